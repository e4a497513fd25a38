"""
Thryve Backend Application Package

This package contains the FastAPI backend for the Thryve trend research
assistant, including:

- main.py: FastAPI application, middleware and router wiring
- research_service.py: Tavily + Gemini research pipeline
- trend_service.py: trend storage, generation rounds and the weekly quota
- chat_service.py: the Yve chat assistant
"""

__version__ = "1.0.0"
