"""알림 고급 검색어를 필터 트리(AST)로 변환하는 파서입니다.

지원 문법 (공백 단위 토큰):

* ``type:VALUE``  - 유형 필터. 값은 소문자로 정규화되어 하나의 ``TypeIn`` 으로 합쳐진다.
* ``-term``       - 제외어. 위치와 관계없이 항상 AND 조건으로 추가된다.
* ``a AND b``     - 양쪽 일반 검색어를 모두 필수(AND)로 만든다.
* ``a OR b``      - 양쪽 일반 검색어를 OR 목록에 넣는다.
* ``term``        - 연산자가 붙지 않은 검색어는 기본 OR 항목이다.

따옴표 구문 검색은 지원하지 않으며 따옴표는 일반 문자로 취급한다.
파서는 예외를 던지지 않는다. 해석할 수 없는 토큰은 일반 검색어가 된다.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

TYPE_TOKEN_RE = re.compile(r"^type:(\w+)$", flags=re.IGNORECASE)
AND_OPERATOR = "AND"
OR_OPERATOR = "OR"


# ---------------------------------------------------------------------------
# Predicate AST
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Include:
    """message 또는 type 에 term 이 포함(대소문자 무시)된 행."""

    term: str


@dataclass(frozen=True)
class Exclude:
    """message 와 type 어디에도 term 이 포함되지 않은 행."""

    term: str


@dataclass(frozen=True)
class TypeIn:
    values: Tuple[str, ...]


@dataclass(frozen=True)
class IdIn:
    values: Tuple[int, ...]


@dataclass(frozen=True)
class FieldEquals:
    field: str
    value: object


@dataclass(frozen=True)
class DateRange:
    field: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None


@dataclass(frozen=True)
class OrderKey:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class KeysetAfter:
    """정렬 키 기준으로 cursor 행 '다음'에 오는 행만 남긴다."""

    cursor: int
    order_by: Tuple[OrderKey, ...]
    # 지정되면 이 사용자의 행만 cursor 기준점으로 인정한다.
    user_id: Optional[int] = None


@dataclass(frozen=True)
class And:
    children: Tuple["Predicate", ...]


@dataclass(frozen=True)
class Or:
    children: Tuple["Predicate", ...]


Predicate = Union[Include, Exclude, TypeIn, IdIn, FieldEquals, DateRange, KeysetAfter, And, Or]


@dataclass
class FilterExpression:
    and_terms: List[Predicate] = field(default_factory=list)
    or_terms: List[Predicate] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.and_terms and not self.or_terms

    def type_filter(self) -> Optional[TypeIn]:
        for term in self.and_terms:
            if isinstance(term, TypeIn):
                return term
        return None


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _unique(values: Iterable[str]) -> Tuple[str, ...]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return tuple(seen)


def _is_operator(token: str) -> bool:
    return token in (AND_OPERATOR, OR_OPERATOR)


def _is_exclusion(token: str) -> bool:
    return token.startswith("-") and len(token) > 1


def _nearest_term(tokens: Sequence[str], start: int, step: int) -> Optional[int]:
    # 제외어는 건너뛰고, 다른 연산자를 만나면 피연산자가 없는 것으로 본다.
    index = start + step
    while 0 <= index < len(tokens):
        token = tokens[index]
        if _is_operator(token):
            return None
        if not _is_exclusion(token):
            return index
        index += step
    return None


def _split_type_tokens(tokens: Sequence[str]) -> Tuple[List[str], List[str]]:
    parsed_types = []
    rest = []
    for token in tokens:
        match = TYPE_TOKEN_RE.match(token)
        if match:
            parsed_types.append(match.group(1).lower())
        else:
            rest.append(token)
    return parsed_types, rest


def _resolve_operators(tokens: Sequence[str]) -> Tuple[set, set, set]:
    """연산자 위치를 보고 AND 결합 항목, OR 결합 항목, 일반어로 격하된 연산자 인덱스를 돌려준다."""
    and_joined = set()
    or_joined = set()
    demoted = set()
    for index, token in enumerate(tokens):
        if not _is_operator(token):
            continue
        operands = [
            operand
            for operand in (_nearest_term(tokens, index, -1), _nearest_term(tokens, index, 1))
            if operand is not None
        ]
        if not operands:
            demoted.add(index)
            continue
        target = and_joined if token == AND_OPERATOR else or_joined
        target.update(operands)
    return and_joined, or_joined, demoted


def parse(search: Optional[str], explicit_types: Optional[Iterable[str]] = None) -> FilterExpression:
    expression = FilterExpression()
    tokens = (search or "").split()
    explicit = [str(value) for value in (explicit_types or []) if str(value).strip()]

    parsed_types, tokens = _split_type_tokens(tokens)
    types = _unique([*parsed_types, *explicit])
    if types:
        expression.and_terms.append(TypeIn(types))

    and_joined, _or_joined, demoted = _resolve_operators(tokens)
    for index, token in enumerate(tokens):
        if _is_operator(token) and index not in demoted:
            continue
        if _is_exclusion(token):
            expression.and_terms.append(Exclude(token[1:]))
        elif index in and_joined:
            expression.and_terms.append(Include(token))
        else:
            # OR 로 결합된 항목과 기본 OR 항목은 같은 목록에 들어간다.
            expression.or_terms.append(Include(token))

    logger.debug(
        "[notifications] parsed search %r -> and=%s or=%s",
        search,
        expression.and_terms,
        expression.or_terms,
    )
    return expression
