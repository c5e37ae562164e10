import os
from flask import Flask


def create_app(test_config=None):
    """Build the round results service.

    Settings come from the environment (DATABASE_URL is required) and can be
    overridden with ``test_config``.
    """
    app = Flask(__name__)

    if not os.environ.get("DATABASE_URL"):
        raise RuntimeError(
            "DATABASE_URL is required; round results are stored in PostgreSQL."
        )

    from . import datastore_pg as _pg

    ttl = _pg._env_int("CACHE_TTL_RESULTS", 120)
    app.config.update(
        DB_POOL_MIN=_pg._env_int("DB_POOL_MIN", 1),
        DB_POOL_MAX=_pg._env_int("DB_POOL_MAX", 10),
        CACHE_TTL_RESULTS=ttl if ttl is not None and ttl >= 0 else 120,
    )
    if test_config:
        app.config.update(test_config)

    # Pool is optional; _get_conn connects directly when it is missing
    try:
        _pg.init_pool(minconn=app.config["DB_POOL_MIN"], maxconn=app.config["DB_POOL_MAX"])
    except Exception:  # pragma: no cover
        app.logger.exception("PostgreSQL pool initialization failed; continuing without pool")

    from . import routes  # type: ignore
    app.register_blueprint(routes.bp)

    app.logger.info(
        "Round results service ready pool=%s-%s cache_ttl_results=%s",
        app.config["DB_POOL_MIN"], app.config["DB_POOL_MAX"], app.config["CACHE_TTL_RESULTS"],
    )
    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    create_app().run(host='0.0.0.0', port=port)
