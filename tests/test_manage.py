import json

import manage
from subtrack.auth.init_data import verify_init_data

TOKEN = "123456:manage-token"


def _sign(capsys, *extra: str) -> str:
    code = manage.main(
        ["sign", "--token", TOKEN, "--user-id", "42", "--username", "bob", "--auth-date", "1700000000", *extra]
    )
    assert code == 0
    return capsys.readouterr().out.strip()


def test_sign_produces_verifiable_payload(capsys) -> None:
    init_data = _sign(capsys, "--first-name", "Bob Smith", "--query-id", "AAA")

    result = verify_init_data(init_data, TOKEN)

    assert result.ok
    assert result.user is not None
    assert result.user.first_name == "Bob Smith"
    assert result.fields["query_id"] == "AAA"


def test_sign_wrap_then_verify_cli(capsys) -> None:
    wrapped = _sign(capsys, "--wrap")
    assert wrapped.startswith("tgWebAppData=")

    code = manage.main(["verify", "--token", TOKEN, "--init-data", wrapped])
    output = json.loads(capsys.readouterr().out)

    assert code == 0
    assert output["ok"] is True
    assert output["user"]["telegram_user_id"] == 42
    assert output["auth_date"] == 1700000000


def test_verify_launch_url_and_failures(capsys) -> None:
    wrapped = _sign(capsys, "--wrap")

    code = manage.main(["verify", "--token", TOKEN, "--url", f"https://subs.example.com/#{wrapped}"])
    assert code == 0
    assert json.loads(capsys.readouterr().out)["ok"] is True

    code = manage.main(["verify", "--token", "654321:other-token", "--init-data", wrapped])
    output = json.loads(capsys.readouterr().out)
    assert code == 1
    assert output == {
        "ok": False,
        "error": "signature_mismatch",
        "debug": {"path": "wrapper", "has_hash": True, "has_auth_date": True, "has_user": True},
    }

    code = manage.main(
        ["verify", "--token", TOKEN, "--max-age", "60", "--init-data", wrapped]
    )
    assert code == 1
    assert json.loads(capsys.readouterr().out)["error"] == "stale_auth_date"


def test_check_offline_reports_missing_token(monkeypatch, tmp_path, capsys) -> None:
    for name in ("TELEGRAM_BOT_TOKEN", "BOT_TOKEN", "API_PORT", "INIT_DATA_MAX_AGE_SEC"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(manage, "ENV_FILE", tmp_path / ".env")
    monkeypatch.chdir(tmp_path)

    assert manage.main(["check", "--offline"]) == 1
    assert "TELEGRAM_BOT_TOKEN" in capsys.readouterr().out

    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", TOKEN)
    monkeypatch.setenv("INIT_DATA_MAX_AGE_SEC", "3600")
    assert manage.main(["check", "--offline"]) == 0
