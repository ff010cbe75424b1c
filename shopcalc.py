"""
ShopCalc Business Calculator
Main application entry point
"""
import argparse
import logging
import shlex
import socket
import sys

import config
from calculator import Calculator
from database import Database
from history_manager import HistoryManager


def get_local_ip():
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        # doesn't even have to be reachable
        s.connect(('10.255.255.255', 1))
        ip = s.getsockname()[0]
        s.close()
    except OSError:
        ip = '127.0.0.1'
    return ip


def print_frame(frame):
    """Show a replay or CHECK frame on the terminal"""
    print(f"  [{frame.current_step}/{frame.total_steps}] {frame.display_value}  (articles: {frame.article_count})")


def print_snapshot(snapshot):
    markers = []
    if snapshot['memory']:
        markers.append("M")
    if snapshot['is_markup_mode']:
        markers.append("MU")
    if snapshot['is_error']:
        markers.append("E")
    marker_text = f" [{' '.join(markers)}]" if markers else ""
    pending = f" {snapshot['pending_operator']}" if snapshot['pending_operator'] else ""
    print(f"{snapshot['display']:>16}{pending}{marker_text}   articles: {snapshot['article_count']}")


def run_keypad(calculator, history_manager, stream=sys.stdin):
    """Read whitespace-separated keys per line and print the display after each line.

    Extra commands: "tape", "history", "stats", "quit".
    """
    print("="*60)
    print(f"{config.APP_NAME} v{config.VERSION}")
    print("Type keys separated by spaces, e.g.  10 + 5 × 3 =")
    print("Commands: tape, history, stats, quit")
    print("="*60)

    for line in stream:
        line = line.strip()
        if not line:
            continue
        if line == 'quit':
            break
        if line == 'tape':
            print(calculator.tape_text() or "(empty tape)")
            continue
        if line == 'history':
            for entry in history_manager.format_calculation_history(10):
                print(entry)
            continue
        if line == 'stats':
            print(calculator.statistics())
            continue

        snapshot = None
        for token in shlex.split(line):
            completed = len(calculator.state.transaction_history)
            snapshot = calculator.process_input(token)
            if len(snapshot['transaction_history']) > completed:
                history_manager.record_result(calculator.state)
        if snapshot is not None:
            print_snapshot(snapshot)


def main(argv=None):
    parser = argparse.ArgumentParser(description=config.APP_NAME)
    parser.add_argument('--web', action='store_true', help='start the REST API server')
    parser.add_argument('--db', default=None, help='SQLite database path')
    args = parser.parse_args(argv)

    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)

    if args.web:
        from api import create_app, run_server
        print(f"Access on your Phone: http://{get_local_ip()}:{config.WEB_PORT}")
        run_server(create_app(db_path=args.db))
        return 0

    calculator = Calculator(on_step=print_frame, on_complete=lambda: print("  replay complete"))
    history_manager = HistoryManager(Database(args.db))
    try:
        run_keypad(calculator, history_manager)
    except KeyboardInterrupt:
        print()
    finally:
        calculator.replay.cancel()
    return 0


if __name__ == "__main__":
    sys.exit(main())
