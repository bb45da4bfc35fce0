"""
Boundary proxy for the IP-fraud provider.

A small Flask app that keeps fraud API keys on the server: clients call
`GET /api/ipqs/check?ip=<ip>` and receive the upstream answer verbatim,
while the key is chosen by the process-wide key pool.
"""

from typing import Optional

import httpx
from flask import Flask, Response, jsonify, request

from .audit_logger import AuditLogger
from .config import SystemConfig, load_config_from_env
from .key_rotation import KeyPool, KeyRotationGateway
from .provider_gateway import ProviderGateway


COMPONENT = "ProxyServer"


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def create_app(
    config: Optional[SystemConfig] = None,
    key_pool: Optional[KeyPool] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    logger: Optional[AuditLogger] = None,
) -> Flask:
    """
    Build the proxy application.

    Args:
        config: System configuration (loaded from the environment if omitted)
        key_pool: Shared key pool (built from the configured fraud keys if omitted)
        transport: Optional httpx transport for upstream calls
        logger: Optional audit logger

    Returns:
        Configured Flask application
    """
    config = config or load_config_from_env()
    pool = key_pool if key_pool is not None else KeyPool(config.credentials.fraud_api_keys)

    app = Flask(__name__)
    app.config["KEY_POOL"] = pool

    @app.after_request
    def no_store(response: Response) -> Response:
        response.headers["Content-Type"] = "application/json"
        response.headers["Cache-Control"] = "no-store"
        return response

    @app.route("/api/ipqs/check", methods=["GET"])
    async def ipqs_check():
        ip = (request.args.get("ip") or "").strip()
        if not ip:
            return _error("Missing required parameter: ip", 400)
        if not len(pool):
            return _error("Server misconfigured: IPQS_API_KEY not set", 500)

        try:
            async with ProviderGateway(timeout=config.provider_timeout, transport=transport) as gateway:
                rotation = KeyRotationGateway(
                    gateway=gateway,
                    pool=pool,
                    url_template=config.endpoints.fraud_url,
                    probe_params={"ip": config.key_rotation.probe_ip},
                    quota_signals=config.key_rotation.quota_signals,
                    startup_wait_seconds=config.key_rotation.startup_wait_seconds,
                    logger=logger,
                )
                upstream = await rotation.request(ip=ip)
        except Exception as e:
            if logger:
                logger.log_error(COMPONENT, "Proxy request failed", error=e, additional_data={"ip": ip})
            return _error("Internal Server Error", 500)

        if upstream.status_code == 0:
            # Transport failure: no upstream answer to pass through
            if logger:
                logger.log_error(COMPONENT, "Upstream unreachable", additional_data={
                    "ip": ip,
                    "error": upstream.error.message if upstream.error else None,
                })
            return _error("Internal Server Error", 500)

        return Response(upstream.text, status=upstream.status_code)

    return app
