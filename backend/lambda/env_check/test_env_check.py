import importlib.util
import json
import pathlib
import sys
from unittest.mock import patch

import jwt

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1] / "shared_layer" / "python"))

from punchlist_shared.errors import ConfigError  # noqa: E402

MODULE_PATH = pathlib.Path(__file__).with_name("lambda_function.py")
SPEC = importlib.util.spec_from_file_location("env_check_lambda", MODULE_PATH)
env_check_lambda = importlib.util.module_from_spec(SPEC)
assert SPEC and SPEC.loader
sys.modules[SPEC.name] = env_check_lambda
SPEC.loader.exec_module(env_check_lambda)

SERVICE_KEY = jwt.encode({"role": "service_role", "iss": "supabase"}, "x" * 32, algorithm="HS256")
ANON_KEY = jwt.encode({"role": "anon", "iss": "supabase"}, "x" * 32, algorithm="HS256")


def _invoke(env, method="GET"):
    event = {"requestContext": {"http": {"method": method, "path": "/api/v1/env-check"}}}
    with patch.dict("os.environ", env, clear=True):
        resp = env_check_lambda.lambda_handler(event, None)
    return resp["statusCode"], json.loads(resp["body"]) if resp.get("body") else None


def test_env_check_reports_configured():
    status, body = _invoke({"SUPABASE_URL": "https://proj.supabase.co", "SUPABASE_SERVICE_ROLE_KEY": SERVICE_KEY})
    assert status == 200
    assert body == {"ok": True, "has_url": True, "has_service_key": True, "service_key_role": "service_role"}


def test_env_check_never_echoes_values():
    _, body = _invoke({"SUPABASE_URL": "https://proj.supabase.co", "SUPABASE_SERVICE_ROLE_KEY": SERVICE_KEY})
    raw = json.dumps(body)
    assert SERVICE_KEY not in raw
    assert "proj.supabase.co" not in raw


def test_env_check_flags_anon_key():
    _, body = _invoke({"SUPABASE_URL": "https://proj.supabase.co", "SUPABASE_SERVICE_ROLE_KEY": ANON_KEY})
    assert body["ok"] is True
    assert body["service_key_role"] == "anon"


def test_env_check_missing_everything():
    status, body = _invoke({})
    assert status == 200
    assert body == {"ok": False, "has_url": False, "has_service_key": False, "service_key_role": None}


def test_env_check_key_without_url():
    _, body = _invoke({"SUPABASE_SERVICE_ROLE_KEY": "not-a-jwt"})
    assert body["has_url"] is False
    assert body["has_service_key"] is True
    assert body["service_key_role"] is None
    assert body["ok"] is False


def test_env_check_secret_lookup_failure_reports_missing_key():
    with patch.object(env_check_lambda, "resolve_service_role_key", side_effect=ConfigError("denied")):
        _, body = _invoke({"SUPABASE_URL": "https://proj.supabase.co"})
    assert body["has_service_key"] is False
    assert body["ok"] is False


def test_env_check_options():
    status, _ = _invoke({}, method="OPTIONS")
    assert status == 204
