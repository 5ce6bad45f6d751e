"""Line classifier for the Markdown API dialect.

Turns raw text into a flat list of blocks (headings, fences, tables,
bullets, bold markers, prose paragraphs) in a single forward pass. An
unterminated fence ends the scan with a fatal block.
"""

import re

from pydantic import BaseModel, ConfigDict, Field

HEADING_RE = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")
FENCE_RE = re.compile(r"^\s{0,3}(`{3,}|~{3,})\s*(.*)$")
MARKER_RE = re.compile(r"^\*\*([^*]+?)\*\*\s*:?\s*(.*)$")
BULLET_RE = re.compile(r"^\s*[-*+]\s+(.*)$")
TABLE_SEPARATOR_RE = re.compile(r"^\s*\|?\s*:?-{2,}:?\s*(\|\s*:?-{2,}:?\s*)*\|?\s*$")


class Block(BaseModel):
    kind: str  # heading / fence / table / bullet / marker / prose / fatal
    line: int  # 1-based line of the block's first line
    text: str = ""
    level: int = 0  # heading level
    column: int = 1  # 1-based byte column of ``text`` within its line
    label: str = ""  # marker label, without the trailing colon
    info: str = ""  # fence info string
    body: list[str] = Field(default_factory=list)  # fence lines
    rows: list[tuple[int, list[str]]] = Field(default_factory=list)  # table rows with line numbers
    source: str = ""  # the raw first line

    model_config = ConfigDict(frozen=True)


def byte_column(line: str, index: int) -> int:
    """1-based byte offset of character ``index`` in ``line``."""
    return len(line[:index].encode("utf-8")) + 1


def split_row(line: str) -> list[str]:
    cells = line.strip()
    if cells.startswith("|"):
        cells = cells[1:]
    if cells.endswith("|") and not cells.endswith("\\|"):
        cells = cells[:-1]
    parts = re.split(r"(?<!\\)\|", cells)
    return [p.strip().replace("\\|", "|") for p in parts]


def scan(lines: list[str], start: int = 0) -> list[Block]:
    """Classify ``lines[start:]`` into blocks; line numbers stay file-relative."""
    blocks: list[Block] = []
    i = start
    paragraph: list[str] = []
    paragraph_line = 0

    def flush_paragraph():
        nonlocal paragraph
        if paragraph:
            blocks.append(Block(kind="prose", line=paragraph_line, text=" ".join(paragraph)))
            paragraph = []

    while i < len(lines):
        raw = lines[i]
        lineno = i + 1
        stripped = raw.strip()

        if not stripped:
            flush_paragraph()
            i += 1
            continue

        fence = FENCE_RE.match(raw)
        if fence:
            flush_paragraph()
            marker = fence.group(1)
            body: list[str] = []
            j = i + 1
            closed = False
            while j < len(lines):
                closing = lines[j].strip()
                if closing.startswith(marker[0] * len(marker)) and not closing.strip(marker[0]):
                    closed = True
                    break
                body.append(lines[j])
                j += 1
            if not closed:
                blocks.append(Block(kind="fatal", line=lineno, text="unterminated code block", source=raw))
                return blocks
            blocks.append(Block(kind="fence", line=lineno, info=fence.group(2).strip().lower(), body=body, source=raw))
            i = j + 1
            continue

        heading = HEADING_RE.match(raw)
        if heading:
            flush_paragraph()
            text = heading.group(2)
            blocks.append(
                Block(
                    kind="heading",
                    line=lineno,
                    level=len(heading.group(1)),
                    text=text,
                    column=byte_column(raw, heading.start(2)),
                    source=raw,
                )
            )
            i += 1
            continue

        if stripped.startswith("|"):
            flush_paragraph()
            rows: list[tuple[int, list[str]]] = []
            j = i
            while j < len(lines) and lines[j].strip().startswith("|"):
                if not TABLE_SEPARATOR_RE.match(lines[j]):
                    rows.append((j + 1, split_row(lines[j])))
                j += 1
            blocks.append(Block(kind="table", line=lineno, rows=rows, source=raw))
            i = j
            continue

        marker = MARKER_RE.match(stripped)
        if marker:
            flush_paragraph()
            blocks.append(
                Block(
                    kind="marker",
                    line=lineno,
                    label=marker.group(1).strip().rstrip(":").strip(),
                    text=marker.group(2).strip(),
                    column=byte_column(raw, raw.index("**")),
                    source=raw,
                )
            )
            i += 1
            continue

        bullet = BULLET_RE.match(raw)
        if bullet:
            flush_paragraph()
            blocks.append(
                Block(kind="bullet", line=lineno, text=bullet.group(1).strip(), column=byte_column(raw, bullet.start(1)), source=raw)
            )
            i += 1
            continue

        if not paragraph:
            paragraph_line = lineno
        paragraph.append(stripped)
        i += 1

    flush_paragraph()
    return blocks
