from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

from postgrest.exceptions import APIError
from supabase import Client, create_client
from supabase.client import ClientOptions

from ricettario.core.errors import (
    ExecutionFailedError,
    InvalidCredentialsError,
    RpcUnavailableError,
    UnreachableError,
)
from ricettario.lib.redaction import redact

RECIPES_TABLE = "recipes"
CHECK_TABLE_RPC = "check_table_exists"
EXECUTE_SQL_RPC = "execute_sql"
REMOTE_TIMEOUT_SECONDS = 10
RECIPES_DDL_FILE = Path(__file__).resolve().parents[1] / "migrations" / "remote_recipes.sql"

# 42P01: undefined_table (Postgres); PGRST205: table missing from the schema cache
_MISSING_RELATION_CODES = {"42P01", "PGRST205"}
_MISSING_FUNCTION_CODES = {"PGRST202", "42883"}
_AUTH_CODES = {"PGRST301", "PGRST302", "401"}


def load_recipes_ddl() -> str:
    return RECIPES_DDL_FILE.read_text(encoding="utf-8")


def _error_code(exc: APIError) -> str:
    return str(getattr(exc, "code", "") or "")


def _error_text(exc: BaseException) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return redact(str(message))


class RemoteBackend:
    """Thin wrapper over a Supabase client used by the provisioning wizard.

    Calls block; callers run them through the background runner. The
    PostgREST timeout bounds every call so the wizard cannot hang.
    """

    def __init__(self, client: Client, *, url: str) -> None:
        self._client = client
        self._url = url
        self._logger = logging.getLogger(__name__)

    @property
    def url(self) -> str:
        return self._url

    @classmethod
    def connect(
        cls,
        url: str,
        anon_key: str,
        *,
        timeout_seconds: float = REMOTE_TIMEOUT_SECONDS,
    ) -> "RemoteBackend":
        url = (url or "").strip()
        anon_key = (anon_key or "").strip()
        parsed = urlparse(url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc or not anon_key:
            raise InvalidCredentialsError(
                "The project URL or anon key is not valid.",
                title="Invalid Credentials",
                remediation="Copy the project URL (https://...) and the anon public key from the project API settings.",
            )
        try:
            client = create_client(
                url,
                anon_key,
                options=ClientOptions(postgrest_client_timeout=timeout_seconds),
            )
        except Exception as exc:
            raise InvalidCredentialsError(
                f"Could not create a client for {url}: {_error_text(exc)}",
                title="Invalid Credentials",
                remediation="Check the project URL and anon key, then retry.",
            ) from exc
        return cls(client, url=url)

    def check_reachable(self) -> None:
        """Raise if the backend cannot be reached or rejects the key."""
        context = {"operation": "check_reachable", "url": self._url}
        try:
            self._client.table(RECIPES_TABLE).select("id").limit(1).execute()
        except APIError as exc:
            code = _error_code(exc)
            text = _error_text(exc)
            lowered = text.lower()
            if code in _AUTH_CODES or "api key" in lowered or "jwt" in lowered:
                self._logger.warning("Backend rejected the key", extra={**context, "code": code})
                raise InvalidCredentialsError(
                    f"The backend rejected the anon key: {text}",
                    title="Invalid Credentials",
                    remediation="Copy the anon public key again from the project API settings.",
                ) from exc
            # Any other PostgREST answer proves the server is reachable.
            self._logger.debug("Backend answered probe", extra={**context, "code": code})
        except Exception as exc:
            self._logger.warning("Backend unreachable", extra=context, exc_info=True)
            raise UnreachableError(
                f"Could not reach {self._url}: {_error_text(exc)}",
                title="Connection Failed",
                remediation="Verify the URL, your network connection and that the project is not paused.",
            ) from exc

    def table_exists(self, name: str = RECIPES_TABLE) -> bool:
        context = {"operation": "table_exists", "table": name}
        try:
            response = self._client.rpc(CHECK_TABLE_RPC, {"table_to_check": name}).execute()
        except Exception as exc:
            self._logger.info(
                "Existence RPC unavailable; probing table",
                extra={**context, "cause": _error_text(exc)},
            )
        else:
            exists = self._coerce_bool(response.data)
            if exists is None:
                self._logger.warning(
                    "Existence RPC returned a non-boolean payload; treating table as absent",
                    extra={**context, "payload_type": type(response.data).__name__},
                )
                return False
            return exists

        try:
            self._client.table(name).select("id").limit(1).execute()
        except APIError as exc:
            code = _error_code(exc)
            if code in _MISSING_RELATION_CODES:
                return False
            self._logger.warning(
                "Table probe failed; treating table as absent",
                extra={**context, "code": code, "cause": _error_text(exc)},
            )
            return False
        except Exception as exc:
            self._logger.warning(
                "Table probe failed; treating table as absent",
                extra={**context, "cause": _error_text(exc)},
            )
            return False
        return True

    def provision_schema(self, ddl: Optional[str] = None) -> None:
        script = ddl if ddl is not None else load_recipes_ddl()
        context = {"operation": "provision_schema", "url": self._url}
        self._logger.info("Provisioning remote schema", extra=context)
        try:
            self._client.rpc(EXECUTE_SQL_RPC, {"query": script}).execute()
        except APIError as exc:
            code = _error_code(exc)
            text = _error_text(exc)
            if code in _MISSING_FUNCTION_CODES or "could not find the function" in text.lower():
                self._logger.warning("Schema RPC missing", extra={**context, "code": code})
                raise RpcUnavailableError(
                    f"The backend does not expose the '{EXECUTE_SQL_RPC}' procedure.",
                    title="Provisioning Unavailable",
                    remediation=(
                        f"Create the '{EXECUTE_SQL_RPC}(query text)' function in the SQL editor, "
                        "or run the recipes schema script manually, then check again."
                    ),
                ) from exc
            self._logger.error("Schema provisioning failed", extra={**context, "code": code})
            raise ExecutionFailedError(
                f"Creating the recipes table failed: {text}",
                title="Provisioning Failed",
                remediation="Review the error in the project logs; the table may already exist.",
            ) from exc
        except Exception as exc:
            self._logger.error("Schema provisioning failed", extra=context, exc_info=True)
            raise ExecutionFailedError(
                f"Creating the recipes table failed: {_error_text(exc)}",
                title="Provisioning Failed",
                remediation="Check your connection and retry.",
            ) from exc
        self._logger.info("Remote schema provisioned", extra=context)

    @staticmethod
    def _coerce_bool(data: Any) -> Optional[bool]:
        if isinstance(data, list):
            data = data[0] if data else False
        if isinstance(data, dict):
            data = next(iter(data.values()), False)
        return data if isinstance(data, bool) else None


__all__ = [
    "RemoteBackend",
    "load_recipes_ddl",
    "RECIPES_TABLE",
    "CHECK_TABLE_RPC",
    "EXECUTE_SQL_RPC",
    "REMOTE_TIMEOUT_SECONDS",
]
