"""
Flask REST API for ShopCalc
Exposes the calculator keypad, its tape and calculation history as JSON endpoints
"""
import logging

from flask import Flask, jsonify, request
from flask_cors import CORS

import config
from calculator import Calculator
from database import Database
from errors import CalculatorError, StateImportError
from history_manager import HistoryManager
from replay import replay_frames

logger = logging.getLogger("shopcalc.api")


def create_app(db_path=None, calculator=None):
    """Build the Flask app around one shared calculator"""
    app = Flask(__name__)
    CORS(app)  # Enable CORS for all routes

    # Initialize components
    db = Database(db_path)
    history_manager = HistoryManager(db)
    calc = calculator if calculator is not None else Calculator()

    app.config['CALCULATOR'] = calc
    app.config['HISTORY_MANAGER'] = history_manager

    def apply_token(token):
        """Feed one token and record the result if it completed a calculation"""
        completed = len(calc.state.transaction_history)
        snapshot = calc.process_input(token)
        if len(snapshot['transaction_history']) > completed:
            history_manager.record_result(calc.state)
        return snapshot

    @app.route('/api')
    def api_info():
        """API information"""
        return jsonify({
            'success': True,
            'data': {
                'name': config.APP_NAME,
                'version': config.VERSION,
                'endpoints': [
                    'POST /api/calculator/input',
                    'GET /api/calculator/state',
                    'GET /api/calculator/tape',
                    'GET /api/calculator/replay',
                    'GET /api/calculator/statistics',
                    'GET /api/calculator/export',
                    'POST /api/calculator/import',
                    'GET|POST|DELETE /api/calculator/states/<name>',
                    'GET /api/calculator/states',
                    'GET|DELETE /api/calculations',
                ]
            }
        })

    @app.route('/api/calculator/input', methods=['POST'])
    def post_input():
        """Press one key ({"token": ...}) or a sequence ({"tokens": [...]})"""
        try:
            payload = request.get_json(silent=True) or {}
            if 'tokens' in payload:
                tokens = payload['tokens']
                if not isinstance(tokens, list):
                    return jsonify({'success': False, 'error': "'tokens' must be a list"}), 400
                results = [{'input': token, 'result': apply_token(token)} for token in tokens]
                return jsonify({
                    'success': True,
                    'data': {'results': results, 'final_state': calc.snapshot()}
                })
            if 'token' not in payload:
                return jsonify({'success': False, 'error': "Missing 'token'"}), 400
            return jsonify({'success': True, 'data': apply_token(payload['token'])})
        except Exception as e:
            logger.exception("Failed to process input")
            return jsonify({'success': False, 'error': str(e)}), 500

    @app.route('/api/calculator/state')
    def get_state():
        """Current calculator snapshot plus context flags"""
        try:
            data = calc.snapshot()
            data['context'] = calc.calculation_context()
            return jsonify({'success': True, 'data': data})
        except Exception as e:
            return jsonify({'success': False, 'error': str(e)}), 500

    @app.route('/api/calculator/tape')
    def get_tape():
        """Recorded steps and the one-line tape"""
        try:
            state = calc.get_state()
            return jsonify({
                'success': True,
                'data': {
                    'steps': [step.to_dict() for step in state.steps],
                    'text': history_manager.format_tape(state),
                    'article_count': state.article_count
                }
            })
        except CalculatorError as e:
            return jsonify({'success': False, 'error': e.message}), 400
        except Exception as e:
            return jsonify({'success': False, 'error': str(e)}), 500

    @app.route('/api/calculator/replay')
    def get_replay():
        """Frames an AUTO replay of the current tape would show"""
        try:
            state = calc.get_state()
            frames = [frame._asdict() for frame in replay_frames(state.steps)] if state.steps else []
            return jsonify({
                'success': True,
                'data': {
                    'frames': frames,
                    'is_replaying': state.is_replaying,
                    'replay_cursor': state.replay_cursor,
                    'delay': calc.replay.delay
                }
            })
        except CalculatorError as e:
            return jsonify({'success': False, 'error': e.message}), 400
        except Exception as e:
            return jsonify({'success': False, 'error': str(e)}), 500

    @app.route('/api/calculator/statistics')
    def get_statistics():
        """Statistics over completed results"""
        try:
            return jsonify({'success': True, 'data': calc.statistics()})
        except Exception as e:
            return jsonify({'success': False, 'error': str(e)}), 500

    @app.route('/api/calculator/export')
    def export_calculator():
        """Serialized calculator state"""
        try:
            return jsonify({'success': True, 'data': calc.export_state()})
        except Exception as e:
            return jsonify({'success': False, 'error': str(e)}), 500

    @app.route('/api/calculator/import', methods=['POST'])
    def import_calculator():
        """Replace the calculator state with an exported one"""
        try:
            payload = request.get_json(silent=True) or {}
            serialized = payload.get('state')
            if not isinstance(serialized, str):
                return jsonify({'success': False, 'error': "Missing 'state' string"}), 400
            calc.import_state(serialized)
            return jsonify({'success': True, 'data': calc.snapshot()})
        except StateImportError as e:
            return jsonify({'success': False, 'error': e.message}), 400
        except Exception as e:
            return jsonify({'success': False, 'error': str(e)}), 500

    @app.route('/api/calculator/states')
    def list_states():
        """Saved calculator states"""
        try:
            states = history_manager.list_saved_states()
            return jsonify({'success': True, 'data': states, 'count': len(states)})
        except Exception as e:
            return jsonify({'success': False, 'error': str(e)}), 500

    @app.route('/api/calculator/states/<name>', methods=['GET', 'POST', 'DELETE'])
    def saved_state(name):
        """POST saves the current state under name; GET restores it; DELETE removes it"""
        try:
            if request.method == 'DELETE':
                if not history_manager.delete_state(name):
                    return jsonify({'success': False, 'error': f"No saved state named '{name}'"}), 404
                return jsonify({'success': True})

            if request.method == 'POST':
                history_manager.save_state(name, calc)
                return jsonify({'success': True, 'data': {'name': name}})

            if not history_manager.restore_state(name, calc):
                return jsonify({'success': False, 'error': f"No saved state named '{name}'"}), 404
            return jsonify({'success': True, 'data': calc.snapshot()})
        except StateImportError as e:
            return jsonify({'success': False, 'error': e.message}), 400
        except Exception as e:
            return jsonify({'success': False, 'error': str(e)}), 500

    @app.route('/api/calculations', methods=['GET', 'DELETE'])
    def calculations():
        """Get or clear calculation history"""
        try:
            if request.method == 'DELETE':
                history_manager.clear_calculation_history()
                return jsonify({'success': True})

            limit = int(request.args.get('limit', 50))
            formatted = []
            for c in history_manager.get_calculation_history(limit):
                formatted.append({
                    'expression': c[0],
                    'result': c[1],
                    'timestamp': c[2]
                })

            return jsonify({
                'success': True,
                'data': formatted,
                'count': len(formatted)
            })
        except Exception as e:
            return jsonify({'success': False, 'error': str(e)}), 500

    return app


def run_server(app=None):
    """Start the API server with the configured host and port"""
    app = app or create_app()
    print("\n" + "="*60)
    print(f"{config.APP_NAME} API Server")
    print("="*60)
    print(f"Server starting on http://{config.WEB_HOST}:{config.WEB_PORT}")
    print(f"Access from this device: http://localhost:{config.WEB_PORT}")
    if config.WEB_HOST == '0.0.0.0':
        print(f"Access from network: http://<your-ip>:{config.WEB_PORT}")
    print("="*60 + "\n")

    app.run(host=config.WEB_HOST, port=config.WEB_PORT, debug=False)


if __name__ == '__main__':
    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
    run_server()
