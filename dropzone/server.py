"""
HTTP API server for the rotation engine.

This module provides a Flask-based REST API over the pure parts of the
engine: balances, eligibility, load capacity and dry-run assignment plans.
Callers send the state to evaluate in the request body; nothing is stored.
"""

from flask import Flask, request, jsonify
from datetime import datetime
from typing import Dict, Any
import logging

from .algorithm import calculate_assignment_metrics, plan_assignment
from .balance import calculate_balances
from .capacity import available_slots, load_capacity, occupied_seats, select_load
from .codec import (
    aircraft_from_dict,
    assignment_from_dict,
    instructor_from_dict,
    load_from_dict,
    period_from_dict,
    rotation_from_dict,
    student_from_dict,
    to_dict,
)
from .eligibility import eligible
from .errors import AssignmentError
from .types import (
    AutoAssignSettings,
    EnginePolicy,
    JumpType,
    LoadPolicy,
    RotationPolicy,
    Snapshot,
)

logger = logging.getLogger(__name__)


class BadPayload(Exception):
    pass


def _parse(parser, items, what: str):
    try:
        return [parser(item) for item in items]
    except (KeyError, ValueError, TypeError) as e:
        logger.error(f"Invalid {what} data: {e}")
        raise BadPayload(f"Invalid {what} data: {e}") from e


def _snapshot(data: Dict[str, Any]) -> Snapshot:
    try:
        period = period_from_dict(data["period"])
        rotation = rotation_from_dict(data.get("rotation") or {})
    except (KeyError, ValueError, TypeError, AttributeError) as e:
        raise BadPayload(f"Invalid period or rotation data: {e}") from e

    aircraft = _parse(aircraft_from_dict, data.get("aircraft", []), "aircraft")
    return Snapshot(
        instructors=_parse(instructor_from_dict, data.get("instructors", []), "instructor"),
        loads=_parse(load_from_dict, data.get("loads", []), "load"),
        assignments=_parse(assignment_from_dict, data.get("assignments", []), "assignment"),
        period=period,
        rotation=rotation,
        aircraft={a.aircraft_id: a for a in aircraft if a.is_active}
    )


def _as_of(data: Dict[str, Any]):
    value = data.get("as_of")
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise BadPayload(f"Invalid as_of: {e}") from e


def create_app(config: Dict[str, Any] = None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config: Optional configuration dictionary

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)

    # Default configuration
    app.config.update({
        'TESTING': False,
        'DEFAULT_CAPACITY': 18,
        'ALLOW_READY_LOADS': False,
        'WRITE_RETRIES': 2,
        'VIDEO_PAIR_WEIGHT': False,
    })

    # Apply custom config
    if config:
        app.config.update(config)

    policy = EnginePolicy(
        load=LoadPolicy(
            default_capacity=app.config['DEFAULT_CAPACITY'],
            allow_ready_loads=app.config['ALLOW_READY_LOADS']
        ),
        write_retries=app.config['WRITE_RETRIES'],
        video_pair_weight=app.config['VIDEO_PAIR_WEIGHT']
    )

    def _body() -> Dict[str, Any]:
        data = request.get_json(silent=True)
        if not data:
            raise BadPayload('Empty request body')
        return data

    @app.errorhandler(BadPayload)
    def bad_payload(error):
        return jsonify({'error': str(error)}), 400

    @app.route('/health', methods=['GET'])
    def health():
        """Health check endpoint."""
        return jsonify({
            'status': 'healthy',
            'service': 'dropzone-rotation',
            'version': '0.1.0',
            'timestamp': datetime.utcnow().isoformat()
        })

    @app.route('/policy', methods=['GET'])
    def get_policy():
        """Get current engine policy and auto-assign defaults."""
        return jsonify({
            'load': to_dict(policy.load),
            'write_retries': policy.write_retries,
            'video_pair_weight': policy.video_pair_weight,
            'auto_assign_defaults': to_dict(AutoAssignSettings()),
            'rotation_defaults': to_dict(RotationPolicy()),
        })

    @app.route('/balances', methods=['POST'])
    def balances():
        """
        Balances for every instructor, lowest (next in line) first.

        Request body: instructors, assignments, loads, period, rotation, as_of
        """
        data = _body()
        snapshot = _snapshot(data)
        result = calculate_balances(
            snapshot.instructors, snapshot.assignments, snapshot.period,
            snapshot.loads, snapshot.rotation, _as_of(data)
        )
        ranked = sorted(result.items(), key=lambda item: item[1])
        return jsonify({
            'balances': [{'instructor_id': iid, 'balance': value} for iid, value in ranked]
        })

    @app.route('/eligible', methods=['POST'])
    def eligible_instructors():
        """
        Instructors who can take a student.

        Request body: instructors, jump_type, student_weight, student_name
        """
        data = _body()
        instructors = _parse(instructor_from_dict, data.get('instructors', []), 'instructor')
        try:
            jump_type = JumpType(data['jump_type'])
            weight = int(data['student_weight'])
        except (KeyError, ValueError, TypeError) as e:
            raise BadPayload(f'Invalid student data: {e}') from e

        result = eligible(instructors, jump_type, weight, data.get('student_name'))
        return jsonify({'instructors': [i.instructor_id for i in result]})

    @app.route('/loads/capacity', methods=['POST'])
    def loads_capacity():
        """
        Seat accounting for each load and the load new work would go to.

        Request body: loads, aircraft, required_seats
        """
        data = _body()
        loads = _parse(load_from_dict, data.get('loads', []), 'load')
        aircraft = {
            a.aircraft_id: a
            for a in _parse(aircraft_from_dict, data.get('aircraft', []), 'aircraft')
        }
        try:
            required = int(data.get('required_seats', 2))
        except (ValueError, TypeError) as e:
            raise BadPayload(f'Invalid required_seats: {e}') from e
        default = policy.load.default_capacity

        selected = select_load(loads, required, policy.load, aircraft)
        return jsonify({
            'loads': [
                {
                    'load_id': l.load_id,
                    'position': l.position,
                    'status': l.status.value,
                    'capacity': load_capacity(l, aircraft, default),
                    'occupied': occupied_seats(l),
                    'available': available_slots(l, aircraft, default),
                }
                for l in sorted(loads, key=lambda l: l.position)
            ],
            'selected_load_id': selected.load_id if selected else None,
        })

    @app.route('/plan', methods=['POST'])
    def plan():
        """
        Dry-run assignment for one student.

        Request body: student, instructors, loads, assignments, period,
        rotation, aircraft, instructor_id, load_id, video_instructor_id
        """
        data = _body()
        snapshot = _snapshot(data)
        try:
            student = student_from_dict(data['student'])
        except (KeyError, ValueError, TypeError) as e:
            raise BadPayload(f'Invalid student data: {e}') from e

        try:
            result = plan_assignment(
                student,
                snapshot,
                policy,
                instructor_id=data.get('instructor_id'),
                load_id=data.get('load_id'),
                video_instructor_id=data.get('video_instructor_id'),
                as_of=_as_of(data)
            )
        except AssignmentError as e:
            logger.info(f"No plan for {student.student_id}: {e.message}")
            return jsonify(e.to_dict()), 409

        metrics = calculate_assignment_metrics(result)
        logger.info(f"Planned {student.student_id}: {metrics}")
        return jsonify({'type': 'assignment_plan', 'plan': metrics})

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 errors."""
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 errors."""
        logger.error(f"Internal server error: {error}")
        return jsonify({'error': 'Internal server error'}), 500

    return app


def run_server(host: str = None, port: int = None, debug: bool = False):
    """
    Run the rotation engine HTTP server.

    Args:
        host: Host to bind to
        port: Port to listen on
        debug: Enable debug mode
    """
    from . import config

    logging.basicConfig(level=logging.INFO, format=config.LOG_FORMAT, datefmt=config.DATE_FORMAT)
    host = host or config.SERVER_HOST
    port = port or config.SERVER_PORT

    logger.info("=" * 50)
    logger.info("  Drop Zone Rotation Engine")
    logger.info("=" * 50)
    logger.info(f"Starting server on {host}:{port}")
    logger.info("Endpoints:")
    logger.info(f"  POST {host}:{port}/balances       - Ranked instructor balances")
    logger.info(f"  POST {host}:{port}/eligible       - Eligible instructors")
    logger.info(f"  POST {host}:{port}/loads/capacity - Load seat accounting")
    logger.info(f"  POST {host}:{port}/plan           - Dry-run assignment")
    logger.info(f"  GET  {host}:{port}/health         - Health check")
    logger.info(f"  GET  {host}:{port}/policy         - Get policy")

    app = create_app({
        'DEFAULT_CAPACITY': config.DEFAULT_CAPACITY,
        'ALLOW_READY_LOADS': config.ALLOW_READY_LOADS,
        'WRITE_RETRIES': config.WRITE_RETRIES,
        'VIDEO_PAIR_WEIGHT': config.VIDEO_PAIR_WEIGHT,
    })
    app.run(host=host, port=port, debug=debug)


if __name__ == '__main__':
    run_server()
