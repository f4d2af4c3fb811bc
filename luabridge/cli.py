"""luabridge-stubgen: generate LuaLS annotation stubs from annotated Python sources."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from luabridge.config import StubgenConfig, load_config, reload_modules, resolve_type
from luabridge.errors import LuaBridgeError
from luabridge.stubgen import StubGenerator
from luabridge.watcher import start_watcher

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="luabridge-stubgen",
        description="Generate Lua stubs from @lua* docstring annotations and registered dataclasses.",
    )
    parser.add_argument("--config", help="YAML config file; flags override its values")
    parser.add_argument("--dir", dest="scan_dir", help="directory to scan for annotated Python files")
    parser.add_argument("--output", help="combined output file (used when --output-dir is not set)")
    parser.add_argument("--output-dir", help="directory for per-module <name>.gen.lua files")
    parser.add_argument("--type", dest="types", action="append", metavar="MODULE:CLASS",
                        help="dataclass to register for type stubs (repeatable)")
    parser.add_argument("--types-file", help="shared types file written in per-module mode")
    parser.add_argument("--module", dest="modules", action="append", metavar="NAME",
                        help="only write this module in per-module mode (repeatable)")
    parser.add_argument("--watch", action="store_true", help="regenerate when sources change")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def resolve_config(args: argparse.Namespace) -> StubgenConfig:
    config = load_config(args.config) if args.config else StubgenConfig()
    for key in ("scan_dir", "output", "output_dir", "types_file"):
        value = getattr(args, key)
        if value is not None:
            setattr(config, key, value)
    if args.types:
        config.types = list(args.types)
    if args.modules:
        config.modules = list(args.modules)
    return config


def run(config: StubgenConfig) -> list[Path]:
    """One generation pass. Returns the files written."""
    gen = StubGenerator()
    gen.scan_directory(config.scan_dir)
    for ref in config.types:
        gen.register_type(resolve_type(ref))
    gen.process_types()

    if config.output_dir:
        written = gen.write_modules(config.output_dir, config.modules or None, config.types_file)
        log.info("Generated Lua stubs for %d module(s) in %s/",
                 gen.extractor.module_count, config.output_dir)
        return written

    output = Path(config.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(gen.generate_combined(), encoding="utf-8")
    log.info("Generated Lua stubs for %d module(s) in %s", gen.extractor.module_count, output)
    return [output]


def regenerate(config: StubgenConfig, changed: list[Path]) -> list[Path]:
    """Watch-mode pass: reload edited modules, then run again."""
    reload_modules(changed)
    return run(config)


async def _watch(config: StubgenConfig) -> None:
    task = await start_watcher(Path(config.scan_dir), lambda changed: regenerate(config, changed))
    await task


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        config = resolve_config(args)
        run(config)
        if args.watch:
            asyncio.run(_watch(config))
    except LuaBridgeError as e:
        log.error("%s", e)
        return 1
    except KeyboardInterrupt:
        log.info("Stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
