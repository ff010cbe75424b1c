"""
Calculator Engine for ShopCalc
Adding-machine style state machine: consumes keypad tokens one at a time and
keeps the display, the audit tape, memory, grand total and markup mode
"""
import copy
import dataclasses
import logging
import math
import threading

import config
import keypad
import math_operations
from calculator_state import (
    IDLE, CalculatorState, Idle, Pending, PendingPercent, Repeat, Step, StepKind,
    export_state, import_state,
)
from errors import CalculatorError, InvalidToken, MarkupMarginOverflow
from keypad import InputKind, Operator
from replay import ReplayController, navigation_frame, navigation_positions
from tape import (
    apply_operator, compound_step, evaluate_steps, format_tape, number_step,
    operand_step, percent_step,
)

logger = logging.getLogger("shopcalc.engine")

fmt = math_operations.format_number

ZERO_DISPLAYS = ("0", "-0")

REPLAY_THREAD = "thread"
REPLAY_INLINE = "inline"


class Calculator:
    """Owns one CalculatorState and applies keypad tokens to it.

    on_step receives ReplayFrame notifications (AUTO replay and CHECK
    navigation); on_complete is called when an AUTO replay finishes.
    replay_mode "thread" plays AUTO replays in the background, "inline"
    plays them synchronously inside process_input.
    """

    def __init__(self, state=None, on_step=None, on_complete=None,
                 replay_delay=None, sleep=None, replay_mode=REPLAY_THREAD):
        self.state = state if state is not None else CalculatorState()
        self.on_step = on_step
        self.on_complete = on_complete
        self.replay_mode = replay_mode
        self.replay = ReplayController(
            on_step=self._replay_step,
            on_complete=self._replay_finished,
            delay=replay_delay,
            sleep=sleep,
        )
        self._lock = threading.RLock()

    # ── Public interface ──────────────────────────────────────────────────────

    def process_input(self, token):
        """Apply one token and return the resulting snapshot"""
        with self._lock:
            try:
                self._dispatch(token)
            except CalculatorError as e:
                self._enter_error(e)
            return self.state.snapshot()

    def process_batch(self, tokens):
        """Apply tokens in order; report each result and the final state"""
        results = []
        for token in tokens:
            try:
                results.append({'input': token, 'result': self.process_input(token), 'success': True})
            except Exception as e:
                logger.exception("Unexpected failure processing %r", token)
                results.append({'input': token, 'result': {'error': str(e)}, 'success': False})
        return {'results': results, 'final_state': self.snapshot()}

    def snapshot(self):
        with self._lock:
            return self.state.snapshot()

    def get_state(self):
        """Deep copy of the current state"""
        with self._lock:
            return copy.deepcopy(self.state)

    def reset(self):
        with self._lock:
            self._stop_replay()
            self._replace_state(CalculatorState())

    def export_state(self):
        with self._lock:
            return export_state(self.state)

    def import_state(self, serialized):
        """Replace the current state with an exported one"""
        imported = import_state(serialized)
        with self._lock:
            self._stop_replay()
            self._replace_state(imported)
            # no replay thread survives an import
            self.state.is_replaying = False
            self.state.tape_view = None
        logger.info("Imported calculator state with %d steps", len(imported.steps))

    def tape_text(self):
        with self._lock:
            if not self.state.steps:
                return ""
            return format_tape(self.state.steps)

    def statistics(self):
        with self._lock:
            return math_operations.calculate_statistics(list(self.state.transaction_history))

    def clear_grand_total(self):
        with self._lock:
            self.state.grand_total = 0.0
            self.state.transaction_history = []

    def calculation_context(self):
        with self._lock:
            return self._context()

    def _context(self):
        s = self.state
        return {
            'has_active_calculation': bool(s.steps),
            'is_compound_calculation': any(step.kind is StepKind.COMPOUND_OPERATION for step in s.steps),
            'can_perform_equals': (
                not isinstance(s.pending, Idle) or (s.is_complete and s.repeat is not None)
            ),
        }

    def validate_state(self):
        """Check the state for structural problems; returns (is_valid, errors)"""
        with self._lock:
            return self._validate()

    def _validate(self):
        s = self.state
        errors = []

        if not isinstance(s.display, str):
            errors.append('Invalid display value')
        elif s.display != "Error":
            try:
                float(s.display.lstrip("="))
            except ValueError:
                errors.append(f'Unparseable display value: {s.display}')

        if not isinstance(s.memory, (int, float)) or not math.isfinite(s.memory):
            errors.append('Invalid memory value')

        if not isinstance(s.grand_total, (int, float)) or not math.isfinite(s.grand_total):
            errors.append('Invalid grand total')

        if not isinstance(s.transaction_history, list):
            errors.append('Invalid transaction history')

        if not isinstance(s.steps, list) or not all(isinstance(step, Step) for step in s.steps):
            errors.append('Invalid calculation steps')
        elif s.steps:
            if s.steps[0].operator is not None:
                errors.append('First step must not carry an operator')
            if any(step.operator is None for step in s.steps[1:]):
                errors.append('Every later step must carry an operator')

        return len(errors) == 0, errors

    # ── Dispatch ──────────────────────────────────────────────────────────────

    def _dispatch(self, token):
        s = self.state
        classified = keypad.classify(token)

        if s.is_error and not keypad.is_clear_key(token):
            logger.debug("Ignoring %r while in error state", token)
            return

        if classified.kind is InputKind.REJECTED:
            raise InvalidToken(f"Unknown input: {token!r}")

        if s.is_replaying and token not in keypad.NAVIGATION:
            self._stop_replay()

        if token not in keypad.NAVIGATION:
            s.tape_view = None

        if classified.kind is InputKind.DIGIT:
            self._enter_digit(token)
        elif classified.kind is InputKind.DECIMAL:
            self._enter_decimal()
        elif classified.kind is InputKind.OPERATOR:
            self._press_operator(classified.operator)
        elif classified.kind is InputKind.EQUALS:
            self._press_equals()
        else:
            self._press_special(token)

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _current_number(self):
        """Numeric value of the display ("=125" reads as 125, "Error" as 0)"""
        try:
            return float(self.state.display.lstrip("=")) + 0.0
        except ValueError:
            return 0.0

    def _replace_state(self, new_state):
        for f in dataclasses.fields(CalculatorState):
            setattr(self.state, f.name, getattr(new_state, f.name))

    def _close_chain(self):
        self.state.chain_expression = None
        self.state.operator_context = None

    def _start_new_calculation(self):
        """Drop the finished tape; memory, grand total and history remain"""
        s = self.state
        s.steps = []
        s.pending = IDLE
        s.repeat = None
        s.is_complete = False
        s.article_count = 0
        s.replay_cursor = None
        self._close_chain()

    def _await_operand(self, display_value=None):
        s = self.state
        if display_value is not None:
            s.display = fmt(display_value)
        s.is_entering_new_number = True
        s.has_operand = False

    def _show_value(self, value):
        """Show a value that can serve as the next operand"""
        s = self.state
        s.display = fmt(value)
        s.is_entering_new_number = True
        s.has_operand = True

    def _count_article(self):
        s = self.state
        if not s.steps and isinstance(s.pending, Idle):
            s.article_count = 1
        elif isinstance(s.pending, Pending) and s.pending.operator.is_additive:
            s.article_count += 1

    def _enter_error(self, error):
        logger.warning("Calculator error %s: %s", error.kind, error.message)
        s = self.state
        self._stop_replay()
        s.is_error = True
        s.last_error = error.kind
        s.display = "Error"
        s.is_markup_mode = False
        s.is_entering_new_number = True
        s.has_operand = False

    # ── Digit and decimal entry ───────────────────────────────────────────────

    def _begin_entry(self):
        """Prepare for a new entry; returns True if one is starting now"""
        s = self.state
        if s.is_complete:
            self._start_new_calculation()
        starting = s.is_entering_new_number or s.display in ZERO_DISPLAYS
        if starting and isinstance(s.pending, PendingPercent):
            # retyping after % replaces the percent figure
            s.pending = Pending(s.pending.operator, s.pending.operand)
        return starting

    def _enter_digit(self, digit):
        s = self.state
        starting = self._begin_entry()
        before = 0.0 if starting else self._current_number()

        if starting:
            negative = s.display == "-0" and not s.is_entering_new_number
            text = digit if digit.strip("0") else "0"
            s.display = f"-{text}" if negative else text
        else:
            typed = sum(c.isdigit() for c in s.display)
            if typed + len(digit) > config.MAX_INPUT_DIGITS:
                logger.debug("Entry limit reached, ignoring %r", digit)
                return
            s.display += digit

        s.is_entering_new_number = False
        s.has_operand = True

        if before == 0 and self._current_number() != 0:
            self._count_article()

    def _enter_decimal(self):
        s = self.state
        starting = self._begin_entry()

        if starting and s.is_entering_new_number:
            s.display = "0."
        elif "." in s.display:
            return
        else:
            s.display += "."

        s.is_entering_new_number = False
        s.has_operand = True

    def _toggle_sign(self):
        s = self.state
        text = s.display.lstrip("=")
        if self._current_number() == 0 and "." not in text:
            s.display = "0" if text == "-0" else "-0"
            s.is_entering_new_number = False
            return
        s.display = text[1:] if text.startswith("-") else f"-{text}"
        s.is_entering_new_number = False
        s.has_operand = True

    # ── Operators ─────────────────────────────────────────────────────────────

    def _is_leading_minus(self):
        """A "-" with nothing to subtract from starts a negative entry"""
        s = self.state
        if s.has_operand or s.is_complete:
            return False
        if not (s.is_entering_new_number or s.display in ZERO_DISPLAYS):
            return False
        if isinstance(s.pending, Idle):
            return not s.steps
        return isinstance(s.pending, Pending) and s.pending.operator.is_multiplicative

    def _press_operator(self, op):
        s = self.state

        if op is Operator.SUBTRACT and self._is_leading_minus():
            s.display = "0" if s.display == "-0" else "-0"
            s.is_entering_new_number = False
            return

        if s.is_complete:
            # continue from the displayed result
            self._start_new_calculation()
            s.has_operand = True

        pending = s.pending
        if isinstance(pending, PendingPercent):
            self._resolve_percent(op)
        elif isinstance(pending, Idle):
            self._open_calculation(op)
        elif not s.has_operand:
            self._switch_operator(op)
        else:
            self._apply_operator(op, self._current_number())

        s.is_entering_new_number = True
        s.has_operand = False

    def _open_calculation(self, op):
        """First operator of a calculation"""
        s = self.state
        value = self._current_number()
        s.steps = []
        self._close_chain()
        if op.is_additive:
            s.steps.append(number_step(value, 1))
            s.article_count = 1
        s.pending = Pending(op, value)
        s.display = fmt(value)

    def _switch_operator(self, op):
        """Operator pressed again before any right operand was typed"""
        s = self.state
        pending = s.pending
        prev = pending.operator

        if op.same_class(prev):
            s.pending = Pending(op, pending.operand)
            return

        if op.is_multiplicative:
            # "+ ×": the last additive entry becomes the chain's left operand
            if not s.steps:
                s.pending = Pending(op, pending.operand)
                return
            last = s.steps[-1]
            if last.kind is StepKind.COMPOUND_OPERATION and last.expression.endswith(")"):
                sign = last.operator.symbol if last.operator else ""
                s.chain_expression = last.expression[len(sign) + 1:-1]
            else:
                s.steps.pop()
                s.chain_expression = None
            s.operator_context = last.operator
            s.pending = Pending(op, last.result)
            s.display = fmt(last.result)
            return

        # "× +": the chain's left operand is taken as it stands
        if s.chain_expression is None:
            left = pending.operand
            if s.steps:
                s.steps.append(operand_step(s.operator_context or Operator.ADD, left, len(s.steps) + 1))
            else:
                s.steps.append(number_step(left, 1))
        self._close_chain()
        self._continue_with(op)

    def _apply_operator(self, op, value):
        """Operator pressed with a right operand available"""
        s = self.state
        prev = s.pending.operator

        if prev.is_additive and op.is_additive:
            s.steps.append(operand_step(prev, value, len(s.steps) + 1))
            self._continue_with(op)
        elif prev.is_additive:
            # defer: the entry opens a ×/÷ chain signed by the pending +/-
            s.operator_context = prev
            s.chain_expression = None
            s.pending = Pending(op, value)
            s.display = fmt(value)
        else:
            result = self._fold_chain(value)
            if op.is_multiplicative:
                s.pending = Pending(op, result)
                s.display = fmt(result)
            else:
                self._close_chain()
                self._continue_with(op)

    def _continue_with(self, op):
        """Refresh the display from the tape and leave op pending"""
        s = self.state
        total = evaluate_steps(s.steps)
        s.display = fmt(total)
        s.pending = Pending(op, total)
        s.article_count = len(s.steps)

    def _fold_chain(self, value):
        """Fold the pending ×/÷ with its right operand into the tape"""
        s = self.state
        pending = s.pending
        left = pending.operand
        result = apply_operator(pending.operator, left, value)
        inner = f"{s.chain_expression or fmt(left)}{pending.operator.symbol}{fmt(value)}"
        self._record_chain(inner, result)
        return result

    def _record_chain(self, inner, result):
        """Write the open chain's compound step, replacing an earlier fold"""
        s = self.state
        if s.chain_expression is not None:
            s.steps.pop()
        context = s.operator_context
        if context is None and s.steps:
            context = Operator.ADD
        s.steps.append(compound_step(context, inner, result, len(s.steps) + 1))
        s.chain_expression = inner

    # ── Equals ────────────────────────────────────────────────────────────────

    def _press_equals(self):
        s = self.state

        if s.is_complete:
            if s.repeat is not None:
                self._repeat_last()
            return

        pending = s.pending
        if isinstance(pending, Idle):
            return

        repeat = None
        if isinstance(pending, PendingPercent):
            self._fold_percent()
        elif pending.operator.is_multiplicative:
            if s.has_operand:
                value = self._current_number()
                self._fold_chain(value)
                repeat = Repeat(pending.operator, value)
            elif s.chain_expression is None:
                value = 1.0 if pending.operator is Operator.MULTIPLY else pending.operand
                self._fold_chain(value)
                repeat = Repeat(pending.operator, value)
        else:
            value = self._current_number()
            s.steps.append(operand_step(pending.operator, value, len(s.steps) + 1))
            repeat = Repeat(pending.operator, value)

        self._close_chain()
        self._complete(evaluate_steps(s.steps), repeat)

    def _repeat_last(self):
        """Continuous equals: apply the last operator and operand again"""
        s = self.state
        value = self._current_number()
        if not s.steps or fmt(evaluate_steps(s.steps)) != fmt(value):
            # the display was changed after the result; restart the tape from it
            s.steps = [number_step(value, 1)]
        s.steps.append(operand_step(s.repeat.operator, s.repeat.operand, len(s.steps) + 1))
        self._complete(evaluate_steps(s.steps), s.repeat)

    def _complete(self, total, repeat):
        s = self.state
        s.grand_total = math_operations.add(s.grand_total, total)
        s.transaction_history.append(total)
        s.pending = IDLE
        s.repeat = repeat
        s.is_complete = True
        s.article_count = len(s.steps)
        self._await_operand(total)
        logger.debug("Completed calculation: %s", format_tape(s.steps, total))

    # ── Percent and markup ────────────────────────────────────────────────────

    def _press_percent(self):
        s = self.state

        if s.is_markup_mode and s.memory != 0:
            self._apply_markup()
            return
        s.is_markup_mode = False

        pct = self._current_number()
        pending = s.pending
        if isinstance(pending, PendingPercent):
            # a second % re-stages from the figure now shown
            pending = s.pending = Pending(pending.operator, pending.operand)

        if isinstance(pending, Pending) and not s.is_complete:
            base = pending.operand
            op = pending.operator
            if op.is_additive:
                amount = math_operations.percentage(pct, base)
                total = apply_operator(op, base, amount)
                if not s.steps:
                    s.steps.append(number_step(base, 1))
                s.steps.append(percent_step(op, pct, amount, total, len(s.steps) + 1))
                self._close_chain()
                self._complete(evaluate_steps(s.steps), None)
                s.display = f"={s.display}"
                return

            if op is Operator.MULTIPLY:
                result = math_operations.percentage(pct, base)
            else:
                result = math_operations.divide(base, pct / 100)
            s.pending = PendingPercent(op, base, pct, result)
            self._await_operand(result)
            return

        self._show_value(math_operations.percentage(pct))

    def _fold_percent(self):
        s = self.state
        p = s.pending
        inner = f"{s.chain_expression or fmt(p.operand)}{p.operator.symbol}{fmt(p.percent)}%"
        self._record_chain(inner, p.result)

    def _resolve_percent(self, op):
        """Operator pressed after a staged ×/÷ percent"""
        s = self.state
        p = s.pending

        if op.is_additive and not s.steps:
            # "200×10%+": the base is kept and the percent folded onto it
            s.steps.append(number_step(p.operand, 1))
            s.operator_context = op
            s.chain_expression = None
            self._fold_percent()
            self._close_chain()
            self._continue_with(op)
        elif op.is_additive:
            self._fold_percent()
            self._close_chain()
            self._continue_with(op)
        else:
            self._fold_percent()
            s.pending = Pending(op, p.result)
            s.display = fmt(p.result)

    def _press_markup(self):
        s = self.state
        if s.memory == 0:
            s.memory = self._current_number()
        s.is_markup_mode = True
        s.is_entering_new_number = True
        s.has_operand = False

    def _apply_markup(self):
        """Selling price = cost / (1 - margin)"""
        s = self.state
        margin = self._current_number()
        cost = s.memory
        if margin >= 100:
            s.is_markup_mode = False
            raise MarkupMarginOverflow(f"Margin {fmt(margin)}% leaves no selling price")

        price = math_operations.divide(cost, 1 - margin / 100)
        price = math_operations.round_to_precision(price, config.MARKUP_DECIMALS)
        s.memory = 0.0
        s.is_markup_mode = False
        s.display = f"={fmt(price)}"
        s.is_entering_new_number = True
        s.has_operand = True

    # ── Special keys ──────────────────────────────────────────────────────────

    def _press_special(self, key):
        s = self.state

        if key in (keypad.ALL_CLEAR, keypad.ON_CLEAR):
            self._stop_replay()
            self._replace_state(CalculatorState())
        elif key == keypad.CLEAR:
            self._stop_replay()
            kept = CalculatorState(
                memory=s.memory,
                grand_total=s.grand_total,
                transaction_history=s.transaction_history,
            )
            self._replace_state(kept)
        elif key == keypad.CLEAR_ENTRY:
            s.display = "0"
            s.is_error = False
            s.last_error = None
            self._await_operand()
        elif key == keypad.BACKSPACE:
            self._backspace()
        elif key == keypad.SIGN:
            self._toggle_sign()
        elif key == keypad.MARKUP:
            self._press_markup()
        elif key == keypad.MEMORY_PLUS:
            s.memory = math_operations.add(s.memory, self._current_number())
            self._show_value(self._current_number())
        elif key == keypad.MEMORY_MINUS:
            s.memory = math_operations.subtract(s.memory, self._current_number())
            self._show_value(self._current_number())
        elif key == keypad.MEMORY_RECALL:
            self._memory_recall()
        elif key == keypad.GRAND_TOTAL:
            self._show_value(s.grand_total)
        elif key == keypad.PERCENT:
            self._press_percent()
        elif key == keypad.SQUARE_ROOT:
            self._show_value(math_operations.square_root(self._current_number()))
        elif key == keypad.AUTO:
            self._start_replay()
        elif key == keypad.CHECK_FORWARD:
            self._navigate(1)
        elif key == keypad.CHECK_BACKWARD:
            self._navigate(-1)
        elif key == keypad.LINK:
            logger.debug("LINK is handled by the host application")

    def _backspace(self):
        s = self.state
        if s.is_entering_new_number or s.is_complete:
            return
        text = s.display[:-1]
        if text in ("", "-", "-0"):
            s.display = "0"
            self._await_operand()
        else:
            s.display = text

    def _memory_recall(self):
        s = self.state
        if s.memory == 0:
            return
        if self._current_number() == s.memory:
            s.memory = 0.0
            return
        self._show_value(s.memory)

    # ── Replay and CHECK navigation ───────────────────────────────────────────

    def _notify(self, frame):
        if self.on_step:
            self.on_step(frame)

    def _start_replay(self):
        s = self.state
        if not s.steps:
            return
        s.is_replaying = True
        s.tape_view = s.steps[0].display_value
        logger.info("AUTO replay of %d steps", len(s.steps))
        if self.replay_mode == REPLAY_INLINE:
            self.replay.run(s.steps)
        else:
            self.replay.start(s.steps)

    def _stop_replay(self):
        self.replay.cancel()
        if self.state.is_replaying:
            logger.info("AUTO replay interrupted")
        self.state.is_replaying = False
        self.state.tape_view = None

    def _replay_step(self, frame):
        with self._lock:
            if frame.run_id != self.replay.run_id or not self.state.is_replaying:
                return
            self.state.tape_view = frame.display_value
            self._notify(frame)

    def _replay_finished(self, run_id):
        with self._lock:
            if run_id != self.replay.run_id or not self.state.is_replaying:
                return
            self.state.is_replaying = False
            self.state.tape_view = None
        if self.on_complete:
            self.on_complete()

    def _navigate(self, direction):
        s = self.state
        positions = navigation_positions(s.steps)
        if not positions:
            return
        if s.replay_cursor is None:
            cursor = 0 if direction > 0 else positions - 1
        else:
            cursor = (s.replay_cursor + direction) % positions
        s.replay_cursor = cursor
        frame = navigation_frame(s.steps, cursor)
        s.tape_view = frame.display_value
        self._notify(frame)


def process_input(state, token):
    """Pure form of the engine: return the state that follows token.

    AUTO replays run inline without delay, so the returned state is never
    left replaying.
    """
    calculator = Calculator(copy.deepcopy(state), replay_delay=0, replay_mode=REPLAY_INLINE)
    calculator.process_input(token)
    return calculator.state
