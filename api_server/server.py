"""
HTTP adapter for the cost basis engine.

Routes:
    POST /cost-basis/sync       run the matcher for {"accounts": [...]}
    GET  /cost-basis/validate   run the reconciliation validator
    GET  /health                liveness
"""

import json

from aiohttp import web

from Config.constants_core import API_LOGGER, DEFAULT_API_HOST, DEFAULT_API_PORT
from Config.exceptions import ConfigMissingError
from cost_basis_engine.exceptions import CostBasisError, PreflightMismatchError
from Shared_Utils.precision import format_quantity


class CostBasisApiServer:
    def __init__(self, matcher, validator, config, logger_manager):
        self.matcher = matcher
        self.validator = validator
        self.config = config
        self.logger = logger_manager.get_logger(API_LOGGER)
        self._runner = None
        self._site = None

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post('/cost-basis/sync', self.handle_sync)
        app.router.add_get('/cost-basis/validate', self.handle_validate)
        app.router.add_get('/health', self.health)
        return app

    async def handle_sync(self, request: web.Request) -> web.Response:
        """Trigger one matching run; the body's accounts fall back to the configured scope."""
        try:
            body = await request.json() if request.can_read_body else {}
        except json.JSONDecodeError:
            self.logger.error("⚠️ JSON Decode Error: Invalid JSON received")
            return self._error_response("Invalid JSON format", 'invalid_json', status=400)

        if not isinstance(body, dict):
            return self._error_response("Request body must be a JSON object", 'invalid_request', status=400)

        accounts = body.get('accounts')
        if accounts is not None and (not isinstance(accounts, list)
                                     or not all(isinstance(a, str) for a in accounts)):
            return self._error_response("accounts must be a list of strings", 'invalid_accounts', status=400)

        try:
            scope = self.config.require_accounts(accounts)
        except ConfigMissingError as e:
            return self._error_response(str(e), 'missing_accounts', status=400)

        try:
            result = await self.matcher.run(scope)
        except CostBasisError as e:
            self.logger.error(f"❌ Sync failed for {', '.join(scope)}: {e}")
            return web.json_response(self._cost_basis_error_body(e), status=422)
        except ValueError as e:
            return self._error_response(str(e), 'invalid_request', status=400)
        except Exception as e:
            self.logger.error(f"⚠️ Unhandled exception in handle_sync: {e}", exc_info=True)
            return self._error_response(f"Internal error {e}", 'internal_error', status=500)

        return web.json_response(result.to_dict())

    async def handle_validate(self, request: web.Request) -> web.Response:
        result = await self.validator.validate()
        return web.json_response(result.to_dict())

    async def health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    @staticmethod
    def _error_response(message: str, kind: str, status: int) -> web.Response:
        return web.json_response({"success": False, "error": message, "kind": kind}, status=status)

    @staticmethod
    def _cost_basis_error_body(error: CostBasisError) -> dict:
        body = {"success": False, "error": str(error), "kind": type(error).__name__}
        if isinstance(error, PreflightMismatchError):
            body["currency"] = error.currency
            body["differential"] = format_quantity(error.differential)
        return body

    async def start(self, host: str = DEFAULT_API_HOST, port: int = DEFAULT_API_PORT):
        """Start aiohttp server without blocking the event loop."""
        app = self.create_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, host, port)
        await self._site.start()
        self.logger.info(f"✅ Cost basis API listening on {host}:{port}")

    async def stop(self):
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
