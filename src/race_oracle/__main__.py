import argparse
import asyncio
import json
import logging
import os
import sys

import uvicorn

import race_oracle.constants as C
from race_oracle.config import load_config
from race_oracle.errors import HarnessError
from race_oracle.logging_config import setup_logging
from race_oracle.oracle import Oracle
from race_oracle.rpc import NodeClient
from race_oracle.scenarios import resources_for

log = logging.getLogger("race_oracle")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="race-oracle")
    parser.add_argument("-c", "--config", help="Path to a config TOML (default: packaged config.toml).")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the control API.")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    run = sub.add_parser("run", help="Run scenarios once and exit non-zero on a failed verdict.")
    run.add_argument("-k", "--kind", type=C.TxKind, choices=list(C.TxKind),
                     help="Run one scenario kind instead of the standard suite.")
    run.add_argument("-n", "--capacity", type=int, choices=[0, 1], default=1,
                     help="Operations' worth of resource the sender holds.")
    run.add_argument("-r", "--resource", type=C.Resource, choices=list(C.Resource), default=C.Resource.GAS)
    run.add_argument("--json", action="store_true", help="Print reports as JSON.")

    args = parser.parse_args(argv)
    if args.command == "run" and args.kind is not None and args.resource not in resources_for(args.kind):
        parser.error(f"{args.kind} cannot race for {args.resource}; supported: {sorted(resources_for(args.kind))}")
    return args


async def _run(args) -> int:
    conf = load_config(args.config)
    async with NodeClient.from_config(conf) as client:
        oracle = Oracle(conf, client)
        await client.probe(
            max_retries=int(conf.get("timeout", {}).get("startup_retries", 30)),
            retry_delay=float(conf.get("timeout", {}).get("startup_retry_delay", 2.0)),
        )
        await oracle.refresh_gas()
        if args.kind is None:
            reports = await oracle.run_suite()
        else:
            suite = [(args.kind, args.capacity, args.resource)]
            reports = await oracle.run_suite(suite)

    if args.json:
        print(json.dumps([r.to_dict() for r in reports], indent=2))
    else:
        for r in reports:
            mark = "PASS" if r.passed else "FAIL"
            print(f"{mark} {r.kind:<22} {r.resource:<6} k={r.capacity} nonces={r.nonces} {r.verdict}")
    return 0 if all(r.passed for r in reports) else 1


def main(argv=None):
    args = parse_args(argv)
    setup_logging()
    if args.command == "serve":
        if args.config:
            os.environ["RACE_ORACLE_CONFIG"] = args.config
        uvicorn.run("race_oracle.app:app", host=args.host, port=args.port, lifespan="on")
        return
    try:
        sys.exit(asyncio.run(_run(args)))
    except HarnessError as e:
        log.error("Harness error: %s", e)
        sys.exit(2)
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
