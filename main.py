"""Entry point for the outreach queue runner."""

import argparse
import asyncio
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from utils.log_utils import tprint
from utils.settings_store import refresh_settings


def _load_env_files() -> None:
    """Load .env files from common locations (repo, package dir, home)."""
    candidates: list[Path] = []
    cwd = Path.cwd()
    candidates.extend([cwd / "env/.env", cwd / ".env"])

    module_root = Path(__file__).resolve().parent
    candidates.extend([module_root / "env/.env", module_root / ".env"])

    home = Path.home()
    candidates.append(home / ".outreach.env")

    for path in candidates:
        if path.exists():
            load_dotenv(dotenv_path=str(path), override=False)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the outreach action queue.")
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Run the control API instead of a single foreground run",
    )
    parser.add_argument("--host", default=os.getenv("OUTREACH_API_HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("OUTREACH_API_PORT", "8765")))
    parser.add_argument(
        "--settings",
        default=None,
        help="Path to a runner settings JSON file",
    )
    return parser.parse_args(argv)


async def _run_foreground() -> None:
    from outreach_runner.controller import build_controller

    controller = build_controller()
    try:
        if not await controller.boot():
            await controller.start()
        await controller.wait()
        status = controller.status()
        tprint(
            f"[MAIN] Run ended ({status['stop_reason'] or status['phase']}): "
            f"{status['stats']['completed']} completed, {status['stats']['failed']} failed"
        )
    finally:
        await controller.close()


def bootstrap(argv: list[str] | None = None) -> None:
    """Load configuration and either serve the API or run the queue once."""
    _load_env_files()
    args = _parse_args(argv)
    if args.settings:
        refresh_settings(args.settings)
    else:
        refresh_settings()

    if args.serve:
        import uvicorn

        uvicorn.run("api.server:app", host=args.host, port=args.port)
        return

    try:
        asyncio.run(_run_foreground())
    except KeyboardInterrupt:
        print("[MAIN] Received interrupt. Shutting down...")
        sys.exit(130)


if __name__ == "__main__":
    bootstrap()
