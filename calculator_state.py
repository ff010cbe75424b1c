"""
Calculator state for ShopCalc
The single mutable aggregate owned by the engine, its tape steps and the
JSON export/import used by persistence collaborators
"""
import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from errors import StateImportError
from keypad import Operator


class StepKind(Enum):
    NUMBER_ENTRY = "number"
    COMPOUND_OPERATION = "compound"


@dataclass
class Step:
    expression: str
    result: float
    step_index: int
    kind: StepKind
    display_value: str
    operator: Optional[Operator] = None

    def to_dict(self):
        return {
            'expression': self.expression,
            'result': self.result,
            'step_index': self.step_index,
            'kind': self.kind.value,
            'display_value': self.display_value,
            'operator': self.operator.symbol if self.operator else None,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            expression=str(data['expression']),
            result=float(data['result']),
            step_index=int(data['step_index']),
            kind=StepKind(data['kind']),
            display_value=str(data['display_value']),
            operator=Operator(data['operator']) if data.get('operator') else None,
        )


# ── Pending operation ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Idle:
    """Nothing is waiting for a right operand."""


@dataclass(frozen=True)
class Pending:
    """operator is waiting for its right operand; operand is the left side."""
    operator: Operator
    operand: float


@dataclass(frozen=True)
class PendingPercent:
    """A ×/÷ percent has been computed but not yet folded into the tape."""
    operator: Operator
    operand: float
    percent: float
    result: float


PendingOperation = Union[Idle, Pending, PendingPercent]

IDLE = Idle()


@dataclass(frozen=True)
class Repeat:
    """Operator and operand re-applied by continuous equals."""
    operator: Operator
    operand: float


def _pending_to_dict(pending):
    if isinstance(pending, Pending):
        return {'kind': 'pending', 'operator': pending.operator.symbol, 'operand': pending.operand}
    if isinstance(pending, PendingPercent):
        return {
            'kind': 'percent',
            'operator': pending.operator.symbol,
            'operand': pending.operand,
            'percent': pending.percent,
            'result': pending.result,
        }
    return {'kind': 'idle'}


def _pending_from_dict(data):
    if not data or data.get('kind') == 'idle':
        return IDLE
    if data['kind'] == 'pending':
        return Pending(Operator(data['operator']), float(data['operand']))
    if data['kind'] == 'percent':
        return PendingPercent(
            Operator(data['operator']),
            float(data['operand']),
            float(data['percent']),
            float(data['result']),
        )
    raise ValueError(f"Unknown pending kind: {data['kind']}")


# ── State ──────────────────────────────────────────────────────────────────────

@dataclass
class CalculatorState:
    display: str = "0"
    memory: float = 0.0
    grand_total: float = 0.0
    pending: PendingOperation = IDLE
    operator_context: Optional[Operator] = None
    chain_expression: Optional[str] = None
    is_entering_new_number: bool = True
    has_operand: bool = False
    is_error: bool = False
    last_error: Optional[str] = None
    article_count: int = 0
    steps: List[Step] = field(default_factory=list)
    transaction_history: List[float] = field(default_factory=list)
    is_markup_mode: bool = False
    replay_cursor: Optional[int] = None
    is_replaying: bool = False
    is_complete: bool = False
    repeat: Optional[Repeat] = None
    tape_view: Optional[str] = None

    @property
    def pending_operator(self):
        if isinstance(self.pending, Pending):
            return self.pending.operator.symbol
        if isinstance(self.pending, PendingPercent):
            return "%"
        return None

    @property
    def pending_operand(self):
        if isinstance(self.pending, (Pending, PendingPercent)):
            return self.pending.operand
        return None

    def snapshot(self):
        """Read-only view handed to the UI after every input"""
        return {
            'display': self.display,
            'memory': self.memory,
            'grand_total': self.grand_total,
            'pending_operator': self.pending_operator,
            'pending_operand': self.pending_operand,
            'is_entering_new_number': self.is_entering_new_number,
            'is_error': self.is_error,
            'article_count': self.article_count,
            'transaction_history': list(self.transaction_history),
            'steps': [step.to_dict() for step in self.steps],
            'is_replaying': self.is_replaying,
            'is_markup_mode': self.is_markup_mode,
            'replay_cursor': self.replay_cursor,
            'tape_view': self.tape_view,
        }

    def to_dict(self):
        return {
            'display': self.display,
            'memory': self.memory,
            'grand_total': self.grand_total,
            'pending': _pending_to_dict(self.pending),
            'operator_context': self.operator_context.symbol if self.operator_context else None,
            'chain_expression': self.chain_expression,
            'is_entering_new_number': self.is_entering_new_number,
            'has_operand': self.has_operand,
            'is_error': self.is_error,
            'last_error': self.last_error,
            'article_count': self.article_count,
            'steps': [step.to_dict() for step in self.steps],
            'transaction_history': list(self.transaction_history),
            'is_markup_mode': self.is_markup_mode,
            'replay_cursor': self.replay_cursor,
            'is_replaying': self.is_replaying,
            'is_complete': self.is_complete,
            'repeat': (
                {'operator': self.repeat.operator.symbol, 'operand': self.repeat.operand}
                if self.repeat else None
            ),
            'tape_view': self.tape_view,
        }

    @classmethod
    def from_dict(cls, data):
        """Build a state from to_dict() output; missing keys keep their defaults"""
        defaults = cls()
        repeat = data.get('repeat')
        context = data.get('operator_context')
        cursor = data.get('replay_cursor')
        return cls(
            display=str(data.get('display', defaults.display)),
            memory=float(data.get('memory', defaults.memory)),
            grand_total=float(data.get('grand_total', defaults.grand_total)),
            pending=_pending_from_dict(data.get('pending')),
            operator_context=Operator(context) if context else None,
            chain_expression=data.get('chain_expression'),
            is_entering_new_number=bool(data.get('is_entering_new_number', defaults.is_entering_new_number)),
            has_operand=bool(data.get('has_operand', defaults.has_operand)),
            is_error=bool(data.get('is_error', defaults.is_error)),
            last_error=data.get('last_error'),
            article_count=int(data.get('article_count', defaults.article_count)),
            steps=[Step.from_dict(step) for step in data.get('steps', [])],
            transaction_history=[float(v) for v in data.get('transaction_history', [])],
            is_markup_mode=bool(data.get('is_markup_mode', defaults.is_markup_mode)),
            replay_cursor=int(cursor) if cursor is not None else None,
            is_replaying=bool(data.get('is_replaying', defaults.is_replaying)),
            is_complete=bool(data.get('is_complete', defaults.is_complete)),
            repeat=Repeat(Operator(repeat['operator']), float(repeat['operand'])) if repeat else None,
            tape_view=data.get('tape_view'),
        )


def export_state(state):
    """Serialize the full state as JSON"""
    return json.dumps({
        'state': state.to_dict(),
        'timestamp': int(time.time() * 1000)
    }, ensure_ascii=False)


def import_state(serialized):
    """Rebuild a state from export_state() output"""
    try:
        data = json.loads(serialized)
    except (TypeError, ValueError) as e:
        raise StateImportError(f"Failed to parse calculator state: {e}")

    if not isinstance(data, dict) or not isinstance(data.get('state'), dict):
        raise StateImportError("Calculator state payload is missing 'state'")

    try:
        return CalculatorState.from_dict(data['state'])
    except (KeyError, TypeError, ValueError) as e:
        raise StateImportError(f"Invalid calculator state: {e}")
