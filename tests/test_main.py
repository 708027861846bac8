"""Tests for the command-line entry point."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ibeacon_transmitter.advertiser import BlueZAdvertiser
from ibeacon_transmitter.console import QuitRequested
from ibeacon_transmitter.main import async_main, build_controller, build_parser, run_console
from ibeacon_transmitter.permissions import LinuxPermissionGate, StaticPermissionGate
from ibeacon_transmitter.profile import AdvertiseMode, AdvertiseTxPowerLevel


def test_parser_defaults() -> None:
    args = build_parser().parse_args([])
    assert args.uuid == "856E3AB6-5EA8-45EB-9813-676BB29C4316"
    assert args.major == "0"
    assert args.minor == "0"
    assert args.measured_power == -59
    assert args.mode is AdvertiseMode.LOW_POWER
    assert args.tx_power is AdvertiseTxPowerLevel.MEDIUM
    assert args.adapter == "hci0"
    assert args.autostart is False


def test_parser_options() -> None:
    args = build_parser().parse_args(
        ["--major", "1", "--minor", "2", "--mode", "low_latency", "--tx-power", "high", "--autostart"]
    )
    assert (args.major, args.minor) == ("1", "2")
    assert args.mode is AdvertiseMode.LOW_LATENCY
    assert args.tx_power is AdvertiseTxPowerLevel.HIGH
    assert args.autostart is True


@pytest.mark.parametrize(
    "argv",
    [
        ["--uuid", "xyz"],
        ["--mode", "warp"],
        ["--tx-power", "max"],
        ["--measured-power", "-200"],
        ["--measured-power", "128"],
        ["--measured-power", "loud"],
    ],
)
def test_parser_rejects_bad_values(argv) -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(argv)


def test_parser_measured_power_in_range() -> None:
    assert build_parser().parse_args(["--measured-power", "-128"]).measured_power == -128


def test_build_controller() -> None:
    args = build_parser().parse_args(["--major", "7", "--mode", "balanced"])
    controller = build_controller(args)
    assert isinstance(controller._radio, BlueZAdvertiser)
    assert isinstance(controller._gate, LinuxPermissionGate)
    assert controller.identity.major == "7"
    assert controller.profile.mode is AdvertiseMode.BALANCED
    assert controller._radio.profile == controller.profile


def test_build_controller_assume_granted() -> None:
    controller = build_controller(build_parser().parse_args(["--assume-granted"]))
    assert isinstance(controller._gate, StaticPermissionGate)


@pytest.mark.asyncio
async def test_async_main_requests_permissions_before_autostart() -> None:
    controller = MagicMock()
    controller.start = AsyncMock()
    controller.stop = AsyncMock()
    with patch("ibeacon_transmitter.main.build_controller", return_value=controller), patch(
        "ibeacon_transmitter.main.run_console", new=AsyncMock()
    ):
        await async_main(build_parser().parse_args(["--autostart"]))

    assert [c[0] for c in controller.mock_calls] == ["request_permissions", "start", "stop"]


@pytest.mark.asyncio
async def test_run_console_executes_until_quit(capsys) -> None:
    loop = asyncio.get_running_loop()
    commands = MagicMock()
    commands.execute = AsyncMock(side_effect=["Major: 1", QuitRequested()])
    stdin = MagicMock()
    stdin.fileno.return_value = 0
    stdin.readline.side_effect = ["major 1\n", "quit\n"]

    def fake_add_reader(fd, callback):
        loop.call_soon(callback)
        loop.call_soon(callback)

    with (
        patch("ibeacon_transmitter.main.sys.stdin", stdin),
        patch.object(loop, "add_reader", side_effect=fake_add_reader),
        patch.object(loop, "remove_reader") as remove_reader,
    ):
        await run_console(commands, asyncio.Event())

    assert commands.execute.await_count == 2
    remove_reader.assert_called_once_with(0)
    assert "Major: 1" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_run_console_stops_on_shutdown() -> None:
    loop = asyncio.get_running_loop()
    commands = MagicMock()
    commands.execute = AsyncMock()
    shutdown = asyncio.Event()
    shutdown.set()
    stdin = MagicMock()
    stdin.fileno.return_value = 0

    with (
        patch("ibeacon_transmitter.main.sys.stdin", stdin),
        patch.object(loop, "add_reader"),
        patch.object(loop, "remove_reader"),
    ):
        await run_console(commands, shutdown)

    commands.execute.assert_not_awaited()
