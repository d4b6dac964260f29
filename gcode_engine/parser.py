import logging
import math
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Iterator, List, Tuple

from .models import ProgramLine

logger = logging.getLogger(__name__)

# 기본 허용 파라미터 문자
DEFAULT_LETTERS: FrozenSet[str] = frozenset("xyzefstpid")

# 명령별 허용 파라미터 문자
COMMAND_LETTERS: Dict[str, FrozenSet[str]] = {
    "G0": frozenset("xyzef"),
    "G1": frozenset("xyzef"),
    "G92": frozenset("xyze"),
    "G28": frozenset("xyz"),
    "G4": frozenset("ps"),
    "M104": frozenset("st"),
    "M109": frozenset("st"),
    "M140": frozenset("s"),
    "M190": frozenset("s"),
    "M106": frozenset("sp"),
    "M107": frozenset("p"),
    "M420": frozenset("sz"),
}

_NUMBER = re.compile(r'^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$')
_MNEMONIC = re.compile(r'^([GMT])0*(\d+)((?:\.\d+)?)$')

# 시도할 인코딩 목록 (우선순위 순)
ENCODINGS = ('utf-8', 'cp949', 'euc-kr')


@dataclass
class DecodeResult:
    """바이트 디코딩 결과"""
    text: str
    encoding: str
    is_fallback: bool  # latin-1 fallback으로 디코딩되었는지


def decode_content(raw_bytes: bytes) -> DecodeResult:
    """Decode raw program bytes, falling back to latin-1 (always succeeds)."""
    for encoding in ENCODINGS:
        try:
            return DecodeResult(raw_bytes.decode(encoding), encoding, False)
        except (UnicodeDecodeError, LookupError):
            continue

    logger.warning("Program bytes are not valid %s; decoding as latin-1", "/".join(ENCODINGS))
    return DecodeResult(raw_bytes.decode('latin-1', errors='replace'), 'latin-1 (fallback)', True)


def split_lines(content: str) -> List[str]:
    return content.replace('\r\n', '\n').replace('\r', '\n').split('\n')


def parse_number(text: str) -> Tuple[bool, float]:
    """
    G-code 숫자 파싱

    Returns:
        (ok, value) - 형식이 틀리거나 inf/nan이면 ok=False
    """
    if not _NUMBER.match(text):
        return False, 0.0
    value = float(text)
    if not math.isfinite(value):
        return False, 0.0
    return True, value


def normalize_mnemonic(token: str) -> str:
    """G01 -> G1, m104 -> M104"""
    upper = token.upper()
    match = _MNEMONIC.match(upper)
    if match:
        return f"{match.group(1)}{int(match.group(2))}{match.group(3)}"
    return upper


def parse_line(line: str, index: int) -> ProgramLine:
    """Parse a single G-code line."""
    raw = line.rstrip('\r\n')
    stripped = raw.strip()

    comment = None
    if ';' in stripped:
        code_part, comment = stripped.split(';', 1)
        code_part = code_part.strip()
        comment = comment.strip()
    else:
        code_part = stripped

    if not code_part:
        return ProgramLine(index=index, raw=raw, comment=comment)

    parts = code_part.split()
    cmd = normalize_mnemonic(parts[0])
    allowed = COMMAND_LETTERS.get(cmd, DEFAULT_LETTERS)

    params: List[Tuple[str, float]] = []
    flags: List[str] = []
    rejected: List[str] = []

    for part in parts[1:]:
        key = part[0].lower()
        if key not in allowed:
            continue
        if len(part) == 1:
            # G28 X 처럼 값 없는 축 지정
            flags.append(key)
            continue
        ok, value = parse_number(part[1:])
        if ok:
            params.append((key, value))
        else:
            logger.debug("line %d: dropping malformed token %r", index, part)
            rejected.append(part)

    return ProgramLine(
        index=index,
        raw=raw,
        cmd=cmd,
        params=params,
        flags=flags,
        rejected=rejected,
        comment=comment,
    )


def iter_program(lines: Iterable[str], start_index: int = 1) -> Iterator[ProgramLine]:
    """라인 이터러블을 ProgramLine 스트림으로 변환"""
    for offset, line in enumerate(lines):
        yield parse_line(line, start_index + offset)


def parse_text(content: str) -> List[ProgramLine]:
    """Parse program text into a list of structured ProgramLine objects."""
    return list(iter_program(split_lines(content)))
