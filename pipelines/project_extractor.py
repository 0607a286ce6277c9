"""Project brief parser: ``## Challenge`` / ``#### Step`` sections -> objects.

A brief is walked line by line through a small state machine::

    IN_PREAMBLE  --## Challenge N: T (D)-->  IN_CHALLENGE
    IN_CHALLENGE --#### Step N.M: T------->  IN_STEP
    IN_STEP      --### Hints-------------->  IN_HINTS
    IN_STEP      --### Guide References--->  IN_REFERENCES
    IN_HINTS / IN_REFERENCES --any heading--> IN_STEP (or IN_CHALLENGE)

Fenced code is tracked separately; headings inside a fence are not headings.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional
from urllib.parse import unquote

from indexer.errors import ParseError
from indexer.filename_resolver import decode_filename
from indexer.models import Challenge, Step

from .frontmatter import read_document

logger = logging.getLogger(__name__)

CHALLENGE_HEADING = re.compile(r"^##\s+Challenge\s+\d+\s*:\s*(.+?)\s*\(([^()]+)\)\s*$")
ANY_CHALLENGE_HEADING = re.compile(r"^##\s+Challenge\b")
SECTION_HEADING = re.compile(r"^##\s")
# "#### Step 1.2: Title", or "### Step 1.2: Title" in older briefs.
STEP_HEADING = re.compile(r"^#{3,4}\s+Step\s+\d+\.\d+\s*:\s*(.+?)\s*$")
HINTS_HEADING = re.compile(r"^###\s+Hints\s*$", re.IGNORECASE)
REFERENCES_HEADING = re.compile(r"^###\s+Guide References\s*$", re.IGNORECASE)
HEADING = re.compile(r"^#{1,6}\s")
FENCE = re.compile(r"^\s*(```|~~~)")
BULLET = re.compile(r"^\s*[-*]\s+(.+?)\s*$")
LINK = re.compile(r"\[([^\]]+)\]\(([^)\s]+)(?:\s+\"[^\"]*\")?\)")
REQUIREMENTS_HEADING = re.compile(r"^###\s+Project Requirements\b", re.IGNORECASE)

DESCRIPTION_LINES = 3
DESCRIPTION_MAX_CHARS = 500

ReferenceResolver = Callable[[str], str]


class ParserState(Enum):
    IN_PREAMBLE = "preamble"
    IN_CHALLENGE = "challenge"
    IN_STEP = "step"
    IN_HINTS = "hints"
    IN_REFERENCES = "references"


class GuideReferenceResolver:
    """Normalizes a guide link to a stable id.

    The linked file is read (relative to ``base_dir``) and its own
    ``canonical_id`` preferred, then its ``slug``. When the file cannot be
    located or read, the bare filename is used.
    """

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = Path(base_dir) if base_dir else None

    def __call__(self, target: str) -> str:
        fallback = decode_filename(target)
        if self.base_dir is None or "://" in target:
            return fallback

        relative = unquote(target.split("#", 1)[0].split("?", 1)[0])
        if relative.startswith("/"):
            relative = relative.lstrip("/")
        path = (self.base_dir / relative)
        if not path.is_file():
            logger.debug(f"Guide reference not found: {path}")
            return fallback
        try:
            header, _ = read_document(path)
        except ParseError as e:
            logger.warning(f"Unreadable guide reference {path}: {e.reason}")
            return fallback
        return str(header.get("canonical_id") or header.get("slug") or fallback)


@dataclass
class _StepDraft:
    title: str
    text: List[str] = field(default_factory=list)
    code_blocks: List[str] = field(default_factory=list)
    hints: List[str] = field(default_factory=list)
    references: List[str] = field(default_factory=list)


@dataclass
class _ChallengeDraft:
    title: str
    difficulty: str
    steps: List[_StepDraft] = field(default_factory=list)


def _description(lines: List[str]) -> str:
    kept = [line.strip() for line in lines if line.strip() and not line.lstrip().startswith("#")]
    return " ".join(kept[:DESCRIPTION_LINES])[:DESCRIPTION_MAX_CHARS]


class ProjectStepExtractor:
    """Turns a project brief body into challenges and steps."""

    def __init__(self, reference_resolver: Optional[ReferenceResolver] = None):
        self.reference_resolver = reference_resolver or GuideReferenceResolver()

    def extract(self, body: str) -> List[Challenge]:
        drafts: List[_ChallengeDraft] = []
        state = ParserState.IN_PREAMBLE
        challenge: Optional[_ChallengeDraft] = None
        step: Optional[_StepDraft] = None
        fence: Optional[List[str]] = None

        def settle() -> ParserState:
            if step is not None:
                return ParserState.IN_STEP
            if challenge is not None:
                return ParserState.IN_CHALLENGE
            return ParserState.IN_PREAMBLE

        for line in body.splitlines():
            if fence is not None:
                fence.append(line)
                if FENCE.match(line):
                    if step is not None:
                        step.code_blocks.append("\n".join(fence))
                    fence = None
                continue
            if FENCE.match(line):
                fence = [line]
                continue

            if SECTION_HEADING.match(line):
                match = CHALLENGE_HEADING.match(line)
                step = None
                if match:
                    challenge = _ChallengeDraft(title=match.group(1).strip(),
                                                difficulty=match.group(2).strip().lower())
                    drafts.append(challenge)
                    state = ParserState.IN_CHALLENGE
                else:
                    if ANY_CHALLENGE_HEADING.match(line):
                        logger.warning(f"Skipping malformed challenge heading: {line.strip()}")
                    challenge = None
                    state = ParserState.IN_PREAMBLE
                continue

            if state == ParserState.IN_PREAMBLE:
                continue

            match = STEP_HEADING.match(line)
            if match:
                step = _StepDraft(title=match.group(1).strip())
                challenge.steps.append(step)
                state = ParserState.IN_STEP
                continue

            if HINTS_HEADING.match(line):
                state = ParserState.IN_HINTS
                continue
            if REFERENCES_HEADING.match(line):
                state = ParserState.IN_REFERENCES
                continue
            if HEADING.match(line):
                state = settle()
                continue

            if state == ParserState.IN_HINTS:
                bullet = BULLET.match(line)
                if bullet and step is not None:
                    step.hints.append(bullet.group(1))
            elif state == ParserState.IN_REFERENCES:
                if step is not None:
                    step.references.extend(m.group(2) for m in LINK.finditer(line))
            elif state == ParserState.IN_STEP:
                step.text.append(line)

        if fence is not None and step is not None:
            # Unterminated fence: keep what was collected.
            step.code_blocks.append("\n".join(fence))

        return [self._finish(number, draft) for number, draft in enumerate(drafts, start=1)]

    def _finish(self, number: int, draft: _ChallengeDraft) -> Challenge:
        steps = []
        for ordinal, step in enumerate(draft.steps, start=1):
            steps.append(Step(
                number=number * 100 + ordinal,
                title=step.title,
                description=_description(step.text),
                guide_references=[self.reference_resolver(target) for target in step.references],
                code_examples="\n\n".join(step.code_blocks) if step.code_blocks else None,
                hints=list(step.hints) if step.hints else None,
            ))
        return Challenge(number=number, title=draft.title, difficulty=draft.difficulty, steps=steps)


def extract_challenges(body: str, base_dir: Optional[Path] = None) -> List[Challenge]:
    return ProjectStepExtractor(GuideReferenceResolver(base_dir)).extract(body)


def extract_requirements(body: str) -> Optional[str]:
    """The ``### Project Requirements`` section, up to the next ``##`` heading."""
    lines = body.splitlines()
    for start, line in enumerate(lines):
        if REQUIREMENTS_HEADING.match(line):
            end = start + 1
            while end < len(lines) and not lines[end].startswith("##"):
                end += 1
            return "\n".join(lines[start:end]).strip()
    return None
