#!/usr/bin/env python3
"""
Uplink main entry point.

    python3 -m uplink devices
    python3 -m uplink validate
    python3 -m uplink diagnose --exit-code 1 ffmpeg.log
    python3 -m uplink serve --stream "Lobby=hw:1,0" --stream "Hall=hw:2,0"
"""

import argparse
import json
import logging
import re
import sys

from uplink.config import UplinkConfig
from uplink.diagnosis import ROLE_SERVER, DiagnosisContext, diagnose, format_message
from uplink.errors import UplinkError
from uplink.log import configure_logging
from uplink.service import UplinkService

logger = logging.getLogger("uplink")


def _slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "stream"


def _parse_stream(value: str):
    name, sep, device = value.partition("=")
    if not sep or not name.strip() or not device.strip():
        raise argparse.ArgumentTypeError(f"expected NAME=DEVICE, got {value!r}")
    return name.strip(), device.strip()


def _cmd_devices(service: UplinkService, args) -> int:
    devices = service.devices()
    if args.json:
        print(json.dumps([d.to_dict() for d in devices], indent=2))
        return 0
    if not devices:
        print("No audio capture devices found")
        return 1
    for device in devices:
        flag = "" if device.available else "  (in use)"
        print(f"{device.id:<32} {device.name}{flag}")
    return 0


def _cmd_validate(service: UplinkService, args) -> int:
    state = service.server.detect_installation()
    if state.installation is None:
        print("Icecast installation not found. Searched:")
        for path in state.searched_paths:
            print(f"  {path}")
        return 1
    validation = service.server.validate_configuration()
    print(f"Configuration: {state.installation.config_path}")
    for error in validation.errors:
        print(f"  error:   {error}")
    for warning in validation.warnings:
        print(f"  warning: {warning}")
    print("valid" if validation.valid else "invalid")
    return 0 if validation.valid else 1


def _cmd_diagnose(service: UplinkService, args) -> int:
    output = args.file.read() if args.file is not None else sys.stdin.read()
    context = DiagnosisContext(
        port=args.port or service.config.default_port,
        device_id=args.device,
        format_name=args.format,
        role=ROLE_SERVER if args.server else None,
    )
    diagnosis = diagnose(output, args.exit_code, context)
    if args.json:
        print(json.dumps(diagnosis.to_dict(), indent=2))
    else:
        print(format_message(diagnosis))
    return 0


def _cmd_serve(service: UplinkService, args) -> int:
    service.initialize()
    service.ensure_server()
    for name, device in args.stream:
        stream = service.add_stream(service.new_stream_config(_slug(name), device, name=name))
        logger.info(f"Stream {stream.name} -> {stream.mount}")
    summary = service.streams.start_all_stopped()
    logger.info(summary["message"])
    service.run_forever()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="uplink", description="Icecast and FFmpeg stream supervisor")
    sub = parser.add_subparsers(dest="command", required=True)

    devices = sub.add_parser("devices", help="List audio capture devices")
    devices.add_argument("--json", action="store_true", help="Print JSON")
    devices.set_defaults(func=_cmd_devices)

    validate = sub.add_parser("validate", help="Validate the Icecast installation and configuration")
    validate.set_defaults(func=_cmd_validate)

    diag = sub.add_parser("diagnose", help="Explain saved encoder or server output")
    diag.add_argument("file", nargs="?", type=argparse.FileType("r"), help="Output file (default: stdin)")
    diag.add_argument("--exit-code", type=int, default=None, help="Exit code of the failed process")
    diag.add_argument("--port", type=int, default=None, help="Icecast port")
    diag.add_argument("--device", default=None, help="Capture device id")
    diag.add_argument("--format", default=None, help="Audio format (mp3, aac, ogg)")
    diag.add_argument("--server", action="store_true", help="The output is from Icecast, not an encoder")
    diag.add_argument("--json", action="store_true", help="Print JSON")
    diag.set_defaults(func=_cmd_diagnose)

    serve = sub.add_parser("serve", help="Run Icecast and the given streams until interrupted")
    serve.add_argument("--stream", action="append", type=_parse_stream, required=True,
                       metavar="NAME=DEVICE", help="Stream to run (repeatable)")
    serve.set_defaults(func=_cmd_serve)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = UplinkConfig.load_config()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    configure_logging(config.log_level, config.log_file if args.command == "serve" else None)

    try:
        service = UplinkService(config)
        return args.func(service, args)
    except KeyboardInterrupt:
        logging.info("Uplink shutdown requested")
        return 0
    except UplinkError as e:
        logging.error(f"{e.code.value}: {e.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
