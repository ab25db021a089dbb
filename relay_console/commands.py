from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Union

PathBuilder = Callable[[dict[str, Any]], str]
BodyRule = Callable[[dict[str, Any]], Any]
Unwrapper = Callable[[Any], Any]


class Command(str, Enum):
    LIST_ACCOUNTS = "list_accounts"
    GET_CURRENT_ACCOUNT = "get_current_account"
    ADD_ACCOUNT = "add_account"
    DELETE_ACCOUNT = "delete_account"
    DELETE_ACCOUNTS = "delete_accounts"
    SWITCH_ACCOUNT = "switch_account"
    REORDER_ACCOUNTS = "reorder_accounts"
    TOGGLE_PROXY_STATUS = "toggle_proxy_status"
    FETCH_ACCOUNT_QUOTA = "fetch_account_quota"
    REFRESH_ALL_QUOTAS = "refresh_all_quotas"

    LOAD_CONFIG = "load_config"
    SAVE_CONFIG = "save_config"

    OPEN_DATA_FOLDER = "open_data_folder"
    GET_APP_PATH = "get_app_path"
    SHOW_MAIN_WINDOW = "show_main_window"

    GET_PROXY_STATUS = "get_proxy_status"
    START_PROXY_SERVICE = "start_proxy_service"
    STOP_PROXY_SERVICE = "stop_proxy_service"
    UPDATE_MODEL_MAPPING = "update_model_mapping"
    FETCH_UPSTREAM_MODELS = "fetch_upstream_models"
    CLEAR_PROXY_SESSION_BINDINGS = "clear_proxy_session_bindings"
    GENERATE_API_KEY = "generate_api_key"

    GET_PROXY_STATS = "get_proxy_stats"
    GET_PROXY_LOGS = "get_proxy_logs"
    SET_PROXY_MONITOR_ENABLED = "set_proxy_monitor_enabled"
    CLEAR_PROXY_LOGS = "clear_proxy_logs"

    GET_WEB_OAUTH_URL = "get_web_oauth_url"
    SUBMIT_WEB_OAUTH_CODE = "submit_web_oauth_code"

    HEALTH_CHECK = "health_check"
    AUTH_STATUS = "auth_status"
    AUTH_SETUP = "auth_setup"
    AUTH_LOGIN = "auth_login"
    AUTH_LOGOUT = "auth_logout"

    # Native bridge only
    PREPARE_OAUTH_URL = "prepare_oauth_url"
    START_OAUTH_LOGIN = "start_oauth_login"
    COMPLETE_OAUTH_LOGIN = "complete_oauth_login"
    CANCEL_OAUTH_LOGIN = "cancel_oauth_login"
    IMPORT_FROM_DB = "import_from_db"
    IMPORT_V1_ACCOUNTS = "import_v1_accounts"
    IMPORT_FROM_CUSTOM_DB = "import_from_custom_db"


@dataclass(frozen=True)
class CommandSpec:
    path: Union[str, PathBuilder]
    method: str
    body: BodyRule | None = None
    unwrap: Unwrapper | None = None

    def build_path(self, args: dict[str, Any]) -> str:
        if callable(self.path):
            return self.path(args)
        return self.path

    @property
    def sends_body(self) -> bool:
        return self.method == "POST"


def _account_path(suffix: str = "") -> PathBuilder:
    return lambda args: f"/api/admin/accounts/{args['accountId']}{suffix}"


def _without_none(**fields: Any) -> dict[str, Any]:
    return {key: value for key, value in fields.items() if value is not None}


COMMANDS: dict[Command, CommandSpec] = {
    Command.LIST_ACCOUNTS: CommandSpec("/api/admin/accounts", "GET"),
    Command.GET_CURRENT_ACCOUNT: CommandSpec("/api/admin/accounts/current", "GET"),
    Command.ADD_ACCOUNT: CommandSpec(
        "/api/admin/accounts",
        "POST",
        body=lambda args: {"refresh_token": args.get("refreshToken"), "email": args.get("email")},
    ),
    Command.DELETE_ACCOUNT: CommandSpec(_account_path(), "DELETE"),
    Command.DELETE_ACCOUNTS: CommandSpec(
        "/api/admin/accounts/batch_delete",
        "POST",
        body=lambda args: {"account_ids": args.get("accountIds")},
    ),
    Command.SWITCH_ACCOUNT: CommandSpec(
        "/api/admin/accounts/switch",
        "POST",
        body=lambda args: {"account_id": args.get("accountId")},
    ),
    Command.REORDER_ACCOUNTS: CommandSpec(
        "/api/admin/accounts/reorder",
        "POST",
        body=lambda args: {"account_ids": args.get("accountIds")},
    ),
    Command.TOGGLE_PROXY_STATUS: CommandSpec(
        _account_path("/toggle_proxy"),
        "POST",
        body=lambda args: _without_none(enable=args.get("enable"), reason=args.get("reason")),
    ),
    Command.FETCH_ACCOUNT_QUOTA: CommandSpec(lambda args: f"/api/admin/quota/{args['accountId']}", "POST"),
    Command.REFRESH_ALL_QUOTAS: CommandSpec("/api/admin/quota/refresh", "POST"),
    Command.LOAD_CONFIG: CommandSpec("/api/admin/config", "GET"),
    Command.SAVE_CONFIG: CommandSpec("/api/admin/config", "POST", body=lambda args: args.get("config")),
    Command.OPEN_DATA_FOLDER: CommandSpec("/api/admin/system/open_folder", "POST"),
    Command.GET_APP_PATH: CommandSpec("/api/admin/system/path", "GET"),
    Command.SHOW_MAIN_WINDOW: CommandSpec("/api/admin/system/show_window", "POST"),
    Command.GET_PROXY_STATUS: CommandSpec("/api/admin/proxy/status", "GET"),
    Command.START_PROXY_SERVICE: CommandSpec("/api/admin/proxy/start", "POST"),
    Command.STOP_PROXY_SERVICE: CommandSpec("/api/admin/proxy/stop", "POST"),
    Command.UPDATE_MODEL_MAPPING: CommandSpec("/api/admin/proxy/mapping", "POST"),
    Command.FETCH_UPSTREAM_MODELS: CommandSpec("/api/admin/proxy/fetch_models", "POST"),
    Command.CLEAR_PROXY_SESSION_BINDINGS: CommandSpec("/api/admin/proxy/sessions", "DELETE"),
    Command.GENERATE_API_KEY: CommandSpec("/api/admin/utils/generate_key", "POST"),
    Command.GET_PROXY_STATS: CommandSpec("/api/admin/monitor/stats", "GET"),
    Command.GET_PROXY_LOGS: CommandSpec("/api/admin/monitor/logs", "GET"),
    Command.SET_PROXY_MONITOR_ENABLED: CommandSpec("/api/admin/monitor/enable", "POST"),
    Command.CLEAR_PROXY_LOGS: CommandSpec("/api/admin/monitor/logs", "DELETE"),
    # These two endpoints do not wrap their payload in the generic envelope.
    Command.GET_WEB_OAUTH_URL: CommandSpec(
        "/api/oauth/url",
        "GET",
        unwrap=lambda body: body.get("url") if isinstance(body, dict) else None,
    ),
    Command.SUBMIT_WEB_OAUTH_CODE: CommandSpec(
        "/api/oauth/exchange",
        "POST",
        unwrap=lambda body: body.get("data") if isinstance(body, dict) else None,
    ),
    Command.HEALTH_CHECK: CommandSpec("/healthz", "GET"),
    Command.AUTH_STATUS: CommandSpec("/api/auth/status", "GET"),
    Command.AUTH_SETUP: CommandSpec("/api/auth/setup", "POST"),
    Command.AUTH_LOGIN: CommandSpec("/api/auth/login", "POST"),
    Command.AUTH_LOGOUT: CommandSpec("/api/auth/logout", "POST"),
}

# Succeed as no-ops on the network transport so shared startup code needs no transport check.
NETWORK_NOOP_COMMANDS: frozenset[Command] = frozenset(
    {
        Command.SHOW_MAIN_WINDOW,
        Command.OPEN_DATA_FOLDER,
        Command.CANCEL_OAUTH_LOGIN,
    }
)

BRIDGE_ONLY_COMMANDS: frozenset[Command] = frozenset(
    {
        Command.PREPARE_OAUTH_URL,
        Command.START_OAUTH_LOGIN,
        Command.COMPLETE_OAUTH_LOGIN,
        Command.CANCEL_OAUTH_LOGIN,
        Command.IMPORT_FROM_DB,
        Command.IMPORT_V1_ACCOUNTS,
        Command.IMPORT_FROM_CUSTOM_DB,
    }
)

VALID_METHODS = ("GET", "POST", "DELETE")


def resolve_command(name: Command | str) -> Command | None:
    if isinstance(name, Command):
        return name
    try:
        return Command(name)
    except ValueError:
        return None


def verify_registry() -> None:
    """Every command needs a network mapping or must be declared bridge-only."""
    missing = [
        command.value
        for command in Command
        if command not in COMMANDS and command not in BRIDGE_ONLY_COMMANDS
    ]
    if missing:
        raise RuntimeError("Commands without a network mapping: " + ", ".join(missing))

    overlapping = [command.value for command in BRIDGE_ONLY_COMMANDS if command in COMMANDS]
    if overlapping:
        raise RuntimeError("Bridge-only commands must not have a network mapping: " + ", ".join(overlapping))

    bad_methods = [command.value for command, spec in COMMANDS.items() if spec.method not in VALID_METHODS]
    if bad_methods:
        raise RuntimeError("Commands with an unsupported HTTP verb: " + ", ".join(bad_methods))


verify_registry()
