from flask import Blueprint, current_app
import os
import time

from .datastore import (
    load_round_inputs as ds_load_round_inputs,
    save_round_outputs as ds_save_round_outputs,
    get_round_outputs as ds_get_round_outputs,
    server_info as ds_server_info,
    uncomplete_round as ds_uncomplete_round,
)
from .engine import compute_round, inputs_from_rows
from .errors import ConfigurationError, DataIntegrityError


bp = Blueprint('main', __name__)


# In-process cache of stored round outputs
_RESULTS_CACHE: dict[int, tuple[float, dict]] = {}


def _cache_get_results(round_id: int) -> dict | None:
    entry = _RESULTS_CACHE.get(round_id)
    if not entry:
        return None
    exp, value = entry
    if exp < time.time():
        _RESULTS_CACHE.pop(round_id, None)
        return None
    return value


def _cache_set_results(round_id: int, value: dict) -> None:
    _RESULTS_CACHE[round_id] = (time.time() + current_app.config['CACHE_TTL_RESULTS'], value)


def _cache_delete_results(round_id: int) -> None:
    _RESULTS_CACHE.pop(round_id, None)


def _cache_clear_all() -> None:
    _RESULTS_CACHE.clear()


def _driver_count(round_results: dict) -> int:
    if 'divisions' in round_results:
        return sum(len(div['standings']) for div in round_results['divisions'])
    return len(round_results.get('standings', []))


def _score_round(round_id: int, complete: bool):
    """Load, compute and persist a round. Returns a Flask response tuple."""
    try:
        data = ds_load_round_inputs(round_id)
    except LookupError as e:
        return {'error': str(e)}, 404

    try:
        config, races, results = inputs_from_rows(data)
        outputs = compute_round(config, races, results)
    except ConfigurationError as e:
        current_app.logger.warning("round_config_error round_id=%s error=%s", round_id, e)
        return {'error': str(e)}, 422
    except DataIntegrityError as e:
        current_app.logger.warning("round_data_error round_id=%s error=%s", round_id, e)
        return {'error': str(e)}, 409

    try:
        ds_save_round_outputs(round_id, outputs, complete=complete)
    except LookupError as e:
        return {'error': str(e)}, 404
    except Exception:
        current_app.logger.exception("Error saving outputs for round %s", round_id)
        raise

    # Only after a successful commit
    _cache_delete_results(round_id)
    current_app.logger.info(
        "round_scored round_id=%s complete=%s drivers=%d races=%d results=%d",
        round_id, complete, _driver_count(outputs['round_results']), len(races), len(results),
    )
    return {'status': 'ok', 'round_id': round_id, 'completed': complete, **outputs}, 200


@bp.route('/api/rounds/<int:round_id>/complete', methods=['POST'])
def complete_round(round_id):
    """Compute all results for a round, store them and mark it completed."""
    return _score_round(round_id, complete=True)


@bp.route('/api/rounds/<int:round_id>/recalculate', methods=['POST'])
def recalculate_round(round_id):
    """Recompute and store a round's results without changing its status."""
    return _score_round(round_id, complete=False)


@bp.route('/api/rounds/<int:round_id>/uncomplete', methods=['POST'])
def uncomplete_round(round_id):
    """Return a completed round to scheduled. Stored results are left in place."""
    try:
        ds_uncomplete_round(round_id)
    except LookupError as e:
        return {'error': str(e)}, 404

    _cache_delete_results(round_id)
    current_app.logger.info("round_uncompleted round_id=%s", round_id)
    return {'status': 'ok', 'round_id': round_id, 'completed': False}, 200


@bp.route('/api/rounds/<int:round_id>/results')
def round_results(round_id):
    cached = _cache_get_results(round_id)
    if cached is not None:
        return cached
    stored = ds_get_round_outputs(round_id)
    if stored is None:
        return {'error': f'Round {round_id} not found'}, 404
    _cache_set_results(round_id, stored)
    return stored


@bp.route('/health/db')
def health_db():
    """Database connectivity health check.

    Always returns HTTP 200 with a JSON body describing connection status.
    """
    if not os.environ.get('DATABASE_URL'):
        return {
            'connected': False,
            'status': 'no_database_url',
            'message': 'DATABASE_URL is not set.'
        }
    try:
        info = ds_server_info()
    except Exception as e:  # pragma: no cover - best-effort health output
        current_app.logger.exception("Database health check failed")
        return {
            'connected': False,
            'status': 'error',
            'error': str(e),
        }
    return {'connected': True, 'status': 'ok', **info}
