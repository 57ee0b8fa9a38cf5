from __future__ import annotations

import pytest

from chain.client import BlockRef
from config.loader import LoadedConfig
from config.networks import default_registry
from config.runtime_schema import DispatchConfig
from execution.errors import InvalidRequest
from scripts.wallet_cli import WalletApp, main, parse_args, parse_ether, run_interactive
from tests.conftest import ALICE, BOB


@pytest.fixture
def app():
    loaded = LoadedConfig(path=None, registry=default_registry({}), dispatch=DispatchConfig(), config_hash="")
    lines = []
    a = WalletApp(loaded, out=lines.append)
    a.lines = lines
    try:
        yield a
    finally:
        a.close()


def _scripted(*answers):
    it = iter(answers)
    return lambda _prompt: next(it)


def test_parse_ether():
    assert parse_ether("0.01") == 10**16
    assert parse_ether(" 1 ") == 10**18
    assert parse_ether("0") == 0


@pytest.mark.parametrize("text", ["abc", "", "nan", "inf", "-1"])
def test_parse_ether_rejects_garbage(text):
    with pytest.raises(InvalidRequest):
        parse_ether(text)


def test_parse_args_send():
    args = parse_args(["--json", "send", "--network", "sepolia", "--to", ALICE, "--amount", "0.5", "--no-wait"])

    assert args.command == "send"
    assert args.no_wait
    assert args.json


def test_send_reports_result(app, session, fake_client):
    app._sessions["sepolia"] = session

    result = app.send("sepolia", ALICE, "0.01", wait=False)

    assert result.kind == "submitted"
    assert fake_client.broadcasts[0]["value"] == 10**16
    assert app.lines[0].startswith("Sent 0x")


def test_batch_reports_summary(app, session, fake_client, tmp_path):
    app._sessions["sepolia"] = session
    path = tmp_path / "recipients.txt"
    path.write_text(f"{ALICE}\n0xBBB\n{BOB}\n", encoding="utf-8")

    results = app.batch("sepolia", str(path), "0.001")

    assert [r.kind for r in results] == ["submitted", "failed", "submitted"]
    assert app.lines[-1] == "3 recipients: 2 sent, 1 failed"


def test_interactive_invalid_choice_then_exit(app, capsys):
    run_interactive(app, prompt=_scripted("9", "0"))

    out = capsys.readouterr().out
    assert "Invalid choice" in out
    assert "Goodbye!" in out


def test_interactive_error_keeps_menu_alive(app, capsys):
    # No RPC URL in the environment: the network is misconfigured.
    run_interactive(app, prompt=_scripted("1", "1", "0"))

    captured = capsys.readouterr()
    assert "MisconfiguredNetwork" in captured.err
    assert "Goodbye!" in captured.out


def test_interactive_list_jobs_empty(app, capsys):
    run_interactive(app, prompt=_scripted("5", "0"))

    assert "No scheduled jobs." in capsys.readouterr().out


def test_main_config_error_exits_1(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "networks.yaml"
    path.write_text("networks: [unclosed\n", encoding="utf-8")

    assert main(["--config", str(path), "balance", "--network", "sepolia"]) == 1


def test_main_unknown_network_exits_1(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    assert main(["--config", str(tmp_path / "absent.yaml"), "balance", "--network", "mainnet"]) == 1


def test_send_reports_revert(app, session, fake_client):
    app._sessions["sepolia"] = session
    fake_client.block = BlockRef(number=4243, block_hash="0x" + "cd" * 32, status=0)

    result = app.send("sepolia", ALICE, "0.01", wait=True)

    assert not result.ok
    assert app.lines[0].startswith("REVERTED 0x")
