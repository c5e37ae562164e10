from typing import Any, Dict, Optional

# Datastore proxy: routes import from here so tests can swap the PostgreSQL
# implementation for an in-memory one.

from . import datastore_pg as _pg


def load_round_inputs(round_id: int) -> Dict[str, Any]:
    return _pg.load_round_inputs(round_id)


def save_round_outputs(round_id: int, outputs: Dict[str, Any], complete: bool = False) -> None:
    _pg.save_round_outputs(round_id, outputs, complete=complete)


def get_round_outputs(round_id: int) -> Optional[Dict[str, Any]]:
    return _pg.get_round_outputs(round_id)


def server_info() -> Dict[str, Any]:
    return _pg.server_info()


def uncomplete_round(round_id: int) -> None:
    _pg.uncomplete_round(round_id)
