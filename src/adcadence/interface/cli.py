"""adcadence CLI: inspect and drive the controller from a terminal."""

import json
import logging
import random
import sys
import time
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Annotated

import typer

from adcadence.application.config import ControllerConfig, resolve_config
from adcadence.application.controller import AdController, build_controller
from adcadence.domain.errors import InvalidGrantError
from adcadence.domain.models import EntitlementStatus
from adcadence.domain.ports import Clock, PersistentKVStore
from adcadence.infrastructure.clock import AsyncioClock, ManualClock
from adcadence.infrastructure.dispatcher import InlineDispatcher
from adcadence.infrastructure.kv_store import InMemoryKVStore, JsonFileKVStore
from adcadence.infrastructure.simulated_network import SimulatedAdNetwork

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="adcadence: entitlement and ad-cadence controller.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage adcadence configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


class PlanChoice(str, Enum):
    free = "free"
    monthly = "monthly"
    annual = "annual"


PLAN_STATUS = {
    PlanChoice.free: EntitlementStatus.FREE,
    PlanChoice.monthly: EntitlementStatus.MONTHLY_PREMIUM,
    PlanChoice.annual: EntitlementStatus.ANNUAL_PREMIUM,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config(ctx: typer.Context) -> ControllerConfig:
    return resolve_config({"state_file": ctx.obj.get("state_file")})


def _open_controller(
    config: ControllerConfig,
    kv_store: PersistentKVStore,
    clock: Clock,
    rng: random.Random | None = None,
    fill_rate: float = 1.0,
) -> AdController:
    rng = rng or random.Random(config.random_seed)
    network = SimulatedAdNetwork(clock, rng=rng, fill_rate=fill_rate)
    return build_controller(config, kv_store, network, clock, InlineDispatcher(), rng=rng)


def _open_local(ctx: typer.Context) -> AdController:
    """Controller over the on-disk state, restored but without timers."""
    config = _config(ctx)
    controller = _open_controller(config, JsonFileKVStore(config.state_file), AsyncioClock())
    controller.entitlements.restore()
    controller.gate.restore()
    return controller


def _format_ts(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="seconds")


def _status_payload(controller: AdController) -> dict:
    record = controller.entitlements.record
    counters = controller.counters()
    return {
        "status": record.status.value,
        "plan": record.status.display_name,
        "premium": record.is_premium,
        "expires_at": _format_ts(record.expires_at),
        "time_remaining": controller.entitlements.format_time_remaining(),
        "session_impressions": counters.session_impressions,
        "max_daily_impressions": controller.gate.max_daily_impressions,
        "last_interstitial_at": _format_ts(counters.last_interstitial_at),
    }


def _print_status(controller: AdController, as_json: bool) -> None:
    payload = _status_payload(controller)
    if as_json:
        typer.echo(json.dumps(payload, indent=2))
        return
    typer.echo(f"Plan: {payload['plan']}")
    typer.echo(f"Premium: {'yes' if payload['premium'] else 'no'}")
    if payload["time_remaining"]:
        typer.echo(f"Expires: {payload['expires_at']} ({payload['time_remaining']})")
    typer.echo(
        f"Impressions today: {payload['session_impressions']}/{payload['max_daily_impressions']}"
    )


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
    state_file: Annotated[
        Path | None, typer.Option(help="JSON file holding persisted controller state.")
    ] = None,
):
    """Global settings for adcadence."""
    ctx.ensure_object(dict)
    ctx.obj["state_file"] = state_file
    if verbose >= 2:
        logging.getLogger("adcadence").setLevel(logging.DEBUG)
    elif verbose == 1:
        logging.getLogger("adcadence").setLevel(logging.INFO)


# ---------------------------------------------------------------------------
# Entitlement commands
# ---------------------------------------------------------------------------


@app.command()
def status(
    ctx: typer.Context,
    as_json: Annotated[bool, typer.Option("--json", help="Emit JSON.")] = False,
):
    """Show the current entitlement and impression counters."""
    _print_status(_open_local(ctx), as_json)


@app.command()
def grant(
    ctx: typer.Context,
    hours: Annotated[float, typer.Argument(help="Length of the temporary grant in hours.")],
):
    """[bold green]Grant[/bold green] temporary premium (replaces any existing grant)."""
    controller = _open_local(ctx)
    try:
        controller.grant_temporary(hours)
    except InvalidGrantError as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(code=1) from e
    _print_status(controller, as_json=False)


@app.command()
def plan(
    ctx: typer.Context,
    choice: Annotated[PlanChoice, typer.Argument(help="Plan to switch to.")],
):
    """Set the paid plan after a purchase or restore."""
    controller = _open_local(ctx)
    controller.set_plan(PLAN_STATUS[choice])
    _print_status(controller, as_json=False)


@app.command()
def tick(ctx: typer.Context):
    """Expire a lapsed temporary grant."""
    controller = _open_local(ctx)
    expired = controller.tick()
    typer.echo("Temporary premium expired." if expired else "No change.")


@app.command("reset-impressions")
def reset_impressions(ctx: typer.Context):
    """Reset the daily interstitial impression counter."""
    controller = _open_local(ctx)
    controller.reset_daily_impressions()
    typer.echo("Daily impressions reset.")


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------

EVENT_HELP = (
    "Events: nav, bg, fg, exit:<Screen>, wait:<seconds>, reward, "
    "grant:<hours>, plan:<free|monthly|annual>, tick, reset."
)


def _number(raw: str, arg: str) -> float:
    try:
        return float(arg)
    except ValueError:
        raise typer.BadParameter(f"Event '{raw}' needs a number. {EVENT_HELP}") from None


def run_simulation(controller: AdController, clock: ManualClock, events: list[str]) -> list[str]:
    """Feed events to a started controller and describe what each one did."""
    lines = []
    started_at = clock.now()
    for raw in events:
        name, _, arg = raw.partition(":")
        if name == "nav":
            result = "threshold reached" if controller.on_navigate() else "counted"
        elif name == "bg":
            controller.on_app_background()
            result = "backgrounded"
        elif name == "fg":
            result = "attempted" if controller.on_app_foreground() else "no attempt"
        elif name == "exit":
            result = "attempted" if controller.on_screen_exit(arg) else "no attempt"
        elif name == "wait":
            clock.advance(_number(raw, arg))
            result = f"t={clock.now() - started_at:.0f}s"
        elif name == "reward":
            result = controller.request_rewarded_presentation().value
        elif name == "grant":
            controller.grant_temporary(_number(raw, arg))
            result = controller.entitlements.status.display_name
        elif name == "plan":
            if arg not in PlanChoice.__members__:
                raise typer.BadParameter(f"Unknown plan in '{raw}'. {EVENT_HELP}")
            controller.set_plan(PLAN_STATUS[PlanChoice(arg)])
            result = controller.entitlements.status.display_name
        elif name == "tick":
            result = "expired" if controller.tick() else "no change"
        elif name == "reset":
            controller.reset_daily_impressions()
            result = "impressions reset"
        else:
            raise typer.BadParameter(f"Unknown event '{raw}'. {EVENT_HELP}")

        counters = controller.counters()
        lines.append(
            f"{raw:<24} {result:<18} nav={counters.navigation_count} "
            f"shown={counters.session_impressions} "
            f"premium={'yes' if controller.is_premium() else 'no'}"
        )
    return lines


@app.command()
def simulate(
    ctx: typer.Context,
    events: Annotated[list[str], typer.Argument(help=EVENT_HELP)],
    seed: Annotated[int, typer.Option(help="Random seed for cadence and fill.")] = 0,
    fill_rate: Annotated[float, typer.Option(help="Share of ad requests that fill.")] = 1.0,
    persist: Annotated[
        bool, typer.Option("--persist", help="Read and write the state file.")
    ] = False,
):
    """Replay a scripted session against a simulated ad network."""
    config = _config(ctx)
    kv_store = JsonFileKVStore(config.state_file) if persist else InMemoryKVStore()
    # Stored timestamps are wall-clock epochs, so a persisted run starts from now
    clock = ManualClock(start=time.time() if persist else 0.0)
    controller = _open_controller(
        config, kv_store, clock, rng=random.Random(seed), fill_rate=fill_rate
    )
    controller.start()
    # Let the initial preloads settle
    clock.advance(1.0)
    try:
        for line in run_simulation(controller, clock, events):
            typer.echo(line)
    except InvalidGrantError as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(code=1) from e
    finally:
        controller.teardown()


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display the resolved configuration as JSON."""
    config = _config(ctx)
    typer.echo(json.dumps(config.model_dump(mode="json"), indent=2))
