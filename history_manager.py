"""
History Manager for ShopCalc
Manages completed-calculation history and saved calculator states
"""
import logging

from math_operations import format_number
from tape import format_tape

logger = logging.getLogger("shopcalc.db")


class HistoryManager:
    def __init__(self, db):
        self.db = db

    def add_calculation(self, expression, result):
        """Add a calculation to history"""
        return self.db.add_calculation(expression, result)

    def record_result(self, state):
        """Store the tape and total of a completed calculation"""
        if not state.is_complete or not state.transaction_history:
            return None
        total = state.transaction_history[-1]
        expression = " ".join(step.display_value for step in state.steps) if state.steps else format_number(total)
        return self.add_calculation(expression, format_number(total))

    def get_calculation_history(self, limit=50):
        """Get calculation history"""
        return self.db.get_calculations(limit)

    def clear_calculation_history(self):
        """Clear all calculation history"""
        self.db.clear_history()

    def format_calculation_history(self, limit=50):
        """Format calculation history for display"""
        history = self.get_calculation_history(limit)
        formatted = []

        for expr, result, timestamp in history:
            formatted.append(f"{timestamp}: {expr} = {result}")

        return formatted

    def format_tape(self, state):
        """One-line tape for a state, or an empty string when nothing is recorded"""
        if not state.steps:
            return ""
        return format_tape(state.steps)

    def save_state(self, name, calculator):
        """Persist the calculator's exported state under name"""
        self.db.save_state(name, calculator.export_state())
        logger.info("Saved calculator state %r", name)

    def restore_state(self, name, calculator):
        """Load a saved state into calculator; False if name is unknown"""
        payload = self.db.load_state(name)
        if payload is None:
            return False
        calculator.import_state(payload)
        logger.info("Restored calculator state %r", name)
        return True

    def list_saved_states(self):
        return [{'name': name, 'updated_at': updated_at} for name, updated_at in self.db.list_states()]

    def delete_state(self, name):
        """Remove a saved state; False if name is unknown"""
        deleted = self.db.delete_state(name)
        if deleted:
            logger.info("Deleted calculator state %r", name)
        return deleted
