"""
hush/cli.py
Command-line entry point for mINd-HUSh (macOS).

USAGE:
  hush                         # run the agent until Ctrl-C
  hush --api                   # run the agent and serve the local HTTP API
  hush --once                  # run a single tick and print the result
  hush --inject 8              # add sample notifications, print the groups
  hush --list-models           # list locally available Ollama models
  hush -b gemini --save        # make the overrides the new defaults

EXAMPLES:
  # Remote classifier
  GOOGLE_API_KEY=... hush --backend gemini

  # Separate state directory (config, prompts, ignore list, cursor)
  hush --state-dir ./hush-state --verbose
"""

import argparse
import json
import logging
import sys
import threading
from dataclasses import asdict
from pathlib import Path

from hush import __version__
from hush.config import BACKENDS, load_config, save_config
from hush.orchestrator import Orchestrator, StartupError

logger = logging.getLogger(__name__)

GREEN  = '\033[92m'
YELLOW = '\033[93m'
RED    = '\033[91m'
CYAN   = '\033[96m'
RESET  = '\033[0m'
BOLD   = '\033[1m'


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog        = 'hush',
        description = 'mINd-HUSh — focus-session notification triage agent',
        formatter_class = argparse.RawDescriptionHelpFormatter,
        epilog = """
PRIVACY:
  With the default Ollama backend nothing leaves this machine.
  The Gemini backend sends notification text to Google.
        """
    )
    parser.add_argument(
        '--state-dir',
        type    = Path,
        default = None,
        help    = 'Directory for config, prompts, ignore list and cursor (default: ~/.config/hush)',
    )
    parser.add_argument(
        '--backend', '-b',
        choices = BACKENDS,
        help    = 'Classification backend (default: from config, else ollama)',
    )
    parser.add_argument(
        '--model', '-m',
        help    = 'Ollama model name (default: from config, else qwen3:8b)',
    )
    parser.add_argument(
        '--ollama-host',
        help    = 'Ollama host URL (default: http://localhost:11434)',
    )
    parser.add_argument(
        '--once',
        action  = 'store_true',
        help    = 'Run a single tick, print the result and exit',
    )
    parser.add_argument(
        '--api',
        action  = 'store_true',
        help    = 'Serve the local HTTP API while the agent runs',
    )
    parser.add_argument(
        '--host',
        help    = 'API bind host (default: 127.0.0.1). Do not expose on shared networks',
    )
    parser.add_argument(
        '--port',
        type    = int,
        help    = 'API port (default: 8766)',
    )
    parser.add_argument(
        '--inject',
        type    = int,
        metavar = 'N',
        help    = 'Inject N sample notifications, print the groups and exit',
    )
    parser.add_argument(
        '--save',
        action  = 'store_true',
        help    = 'Persist --backend/--model/--ollama-host/--host/--port to hush_config.json and exit',
    )
    parser.add_argument(
        '--list-models',
        action  = 'store_true',
        help    = 'List locally available Ollama models and exit',
    )
    parser.add_argument(
        '--verbose', '-v',
        action  = 'store_true',
        help    = 'Enable debug logging',
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    # ── LOGGING SETUP ────────────────────────────────────────
    logging.basicConfig(
        level   = logging.DEBUG if args.verbose else logging.INFO,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    config = load_config(args.state_dir)
    for key, value in (
        ('backend', args.backend),
        ('model', args.model),
        ('ollama_host', args.ollama_host),
        ('api_host', args.host),
        ('api_port', args.port),
    ):
        if value is not None:
            config[key] = value

    # ── SAVE CONFIG ──────────────────────────────────────────
    if args.save:
        path = save_config(config, args.state_dir)
        _ok(f"Config saved to {path}")
        return 0

    # ── LIST MODELS ──────────────────────────────────────────
    if args.list_models:
        from hush.llm.ollama_adapter import OllamaAdapter
        models = OllamaAdapter(host=config['ollama_host']).list_available_models()
        if models:
            _print(f"\n{BOLD}Available Ollama models:{RESET}")
            for m in models:
                _print(f"  • {m}")
        else:
            _print(f"{YELLOW}No models found. Is Ollama running?{RESET}")
        return 0

    try:
        orchestrator = Orchestrator.from_config(config)
    except StartupError as e:
        _print(f"{RED}Error: {e}{RESET}")
        return 1

    try:
        if args.inject is not None:
            inserted = orchestrator.inject_test_notifications(args.inject)
            _ok(f"{inserted} sample notifications injected")
            _dump([asdict(g) for g in orchestrator.engine.snapshot()])
            return 0

        if args.once:
            result = orchestrator.tick()
            _dump({'tick': asdict(result), 'status': orchestrator.status()})
            return 0

        return _run(orchestrator, config, serve_api=args.api)
    finally:
        orchestrator.close()


def _run(orchestrator: Orchestrator, config, serve_api: bool) -> int:
    _print(f"{BOLD}{CYAN}mINd-HUSh {__version__}{RESET}")
    _print(f"State directory : {CYAN}{config['state_dir']}{RESET}")
    _print(f"Backend         : {CYAN}{config['backend']}{RESET}")
    _print(f"Poll interval   : {CYAN}{config['poll_interval_sec']}s{RESET}")
    _print("")

    orchestrator.start()

    if serve_api:
        import uvicorn
        from hush.api import HushAPI, build_app
        app = build_app(HushAPI(orchestrator))
        _step(f"API at http://{config['api_host']}:{config['api_port']}")
        uvicorn.run(app, host=config['api_host'], port=int(config['api_port']), log_level='info')
        return 0

    _step("Watching notifications (Ctrl-C to stop)...")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        _print("")
    return 0


# ── PRINT HELPERS ────────────────────────────────────────────

def _step(msg):  _print(f"  {CYAN}→{RESET} {msg}")
def _ok(msg):    _print(f"  {GREEN}✓{RESET} {msg}")
def _print(msg): print(msg)

def _dump(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


if __name__ == '__main__':
    sys.exit(main())
