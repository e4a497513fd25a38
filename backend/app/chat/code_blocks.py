"""Code-block detection in assistant replies.

Fenced blocks are found with three patterns (standard, inline-fence and
variable-length backticks) and de-duplicated by body. When no fence matches,
a heuristic scan picks up bare Python that uses the libraries utilities are
built on (streamlit, pandas, plotly).
"""

import re
from dataclasses import dataclass
from typing import List, Optional

_FENCE_PATTERNS = (
    re.compile(r"```(\w+)?\s*\n([\s\S]*?)\n\s*```"),
    re.compile(r"```(\w+)?\s*([\s\S]*?)\s*```"),
    re.compile(r"`{3,}(\w+)?\s*\n([\s\S]*?)\n\s*`{3,}"),
)
_STRIP_PATTERNS = (
    re.compile(r"```[\s\S]*?```"),
    re.compile(r"`{3,}[\s\S]*?`{3,}"),
)
_BLANK_RUN_RE = re.compile(r"\n\s*\n")
_PYTHON_STATEMENT_RE = re.compile(r"^(import|from|def|class|if|for|while|try|with)\s")
_INDENTED_RE = re.compile(r"^\s+")

PYTHON_INDICATORS = (
    "import streamlit",
    "import pandas",
    "import plotly",
    "st.title",
    "st.write",
    "pd.read_csv",
    "px.bar",
    "px.line",
)
DEFAULT_LANGUAGE = "text"


@dataclass
class CodeBlock:
    language: str
    code: str

    @property
    def is_python(self) -> bool:
        if self.language == "python":
            return True
        if self.language != DEFAULT_LANGUAGE:
            return False
        return any(marker in self.code for marker in ("import ", "def ", "class "))


def _bare_python_block(content: str) -> Optional[CodeBlock]:
    if not any(indicator in content for indicator in PYTHON_INDICATORS):
        return None

    section: List[str] = []
    in_code = False
    for line in content.split("\n"):
        if (
            any(indicator in line for indicator in PYTHON_INDICATORS)
            or _PYTHON_STATEMENT_RE.match(line)
            or (in_code and _INDENTED_RE.match(line))
        ):
            in_code = True
            section.append(line)
        elif in_code and not line.strip():
            section.append(line)
        elif in_code:
            break

    code = "\n".join(section).strip()
    return CodeBlock(language="python", code=code) if code else None


def extract_code_blocks(content: str) -> List[CodeBlock]:
    """All distinct code blocks in *content*, in pattern then position order."""
    blocks: List[CodeBlock] = []
    seen = set()
    for pattern in _FENCE_PATTERNS:
        for match in pattern.finditer(content):
            code = (match.group(2) or "").strip()
            if not code or code in seen:
                continue
            seen.add(code)
            blocks.append(CodeBlock(language=(match.group(1) or DEFAULT_LANGUAGE).lower(), code=code))

    if not blocks:
        fallback = _bare_python_block(content)
        if fallback is not None:
            blocks.append(fallback)
    return blocks


def find_python_block(blocks: List[CodeBlock]) -> Optional[CodeBlock]:
    return next((block for block in blocks if block.is_python), None)


def remove_code_blocks(content: str) -> str:
    """Reply text with fenced code removed, for display beside a code accordion."""
    for pattern in _STRIP_PATTERNS:
        content = pattern.sub("", content)
    return _BLANK_RUN_RE.sub("\n", content).strip()
