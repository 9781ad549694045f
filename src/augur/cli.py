"""Augur CLI — thin interactive adapter over AugurService.

Usage:
    augur predict --statement "BTC above 100k" --probability 60 --date 2027/01/01
    augur resolve
    augur resolve --answer FALSE
    augur list
    augur verify --index 2
    augur verifyall
    augur tally

Missing inputs are prompted for. Settings come from a .env file
(see augur.config).
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Optional

from augur.config import DEFAULT_ENV_FILE, AugurConfig, ConfigError
from augur.crypto.anchor import LedgerAnchorClient, RetryPolicy
from augur.crypto.ethereum import EthereumAnchorClient
from augur.engine.resolution import InvalidJudgment, parse_judgment
from augur.logging_config import configure_logging
from augur.models.prediction import Prediction, VerificationReport
from augur.persistence.record_store import RecordStoreError
from augur.service import AugurService


InputFn = Callable[[str], str]
ClientFactory = Callable[[AugurConfig], LedgerAnchorClient]


def make_client(config: AugurConfig) -> LedgerAnchorClient:
    """Build the Ethereum-backed ledger client from config."""
    config.require_ledger()
    return EthereumAnchorClient(
        rpc_url=config.rpc_url,
        private_key=config.private_key,
        chain_id=config.chain_id,
        policy=RetryPolicy(
            max_attempts=config.read_attempts,
            default_wait=config.retry_wait,
        ),
    )


def _load_config(args: argparse.Namespace) -> AugurConfig:
    config = AugurConfig.from_env(args.env)
    if args.data_dir is not None:
        config = config.with_data_dir(args.data_dir)
    return config


def _make_service(
    args: argparse.Namespace,
    needs_ledger: bool = False,
) -> AugurService:
    config = _load_config(args)
    client = args.client_factory(config) if needs_ledger else None
    return AugurService(config, client=client)


def _fail(errors: list[str]) -> int:
    print(f"Failed: {'; '.join(errors)}", file=sys.stderr)
    return 1


def _print_report(report: VerificationReport) -> None:
    print(report.line())


def cmd_predict(args: argparse.Namespace) -> int:
    ask: InputFn = args.input
    statement = args.statement if args.statement is not None else ask("> Statement: ")
    probability = args.probability if args.probability is not None else ask("> Probability (%): ")
    resolution_date = args.date if args.date is not None else ask(
        "> Date of resolution (year/month/day): "
    )
    try:
        probability = int(probability)
    except ValueError:
        return _fail([f"Probability must be an integer, got {probability!r}"])

    service = _make_service(args, needs_ledger=True)
    print("Sending to ledger...")
    result = service.predict(statement, probability, resolution_date)
    if not result.success:
        return _fail(result.errors)

    print(f"Hash: {result.data['hash']}")
    if "warning" in result.data:
        print(f"Warning: {result.data['warning']}")
        return 0
    print(f"Tx: {result.data['record_id']}")
    if "explorer_url" in result.data:
        print(f"View: {result.data['explorer_url']}")
    return 0


def _prompt_judge(ask: InputFn) -> Callable[[Prediction], str]:
    def judge(prediction: Prediction) -> str:
        print(f"{prediction.statement} ({prediction.resolution_date})")
        while True:
            answer = ask("> (TRUE/FALSE) ")
            try:
                return parse_judgment(answer).value
            except InvalidJudgment:
                print("Please answer TRUE or FALSE")
    return judge


def cmd_resolve(args: argparse.Namespace) -> int:
    service = _make_service(args)
    if args.answer is not None:
        judge = lambda _prediction: args.answer  # noqa: E731
    else:
        judge = _prompt_judge(args.input)
    result = service.resolve(judge)
    if not result.success:
        return _fail(result.errors)
    print(
        f"Resolved {len(result.data['resolved'])}, "
        f"still pending {len(result.data['still_pending'])}"
    )
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.list_commitments()
    if not result.success:
        return _fail(result.errors)
    records = result.data["commitments"]
    if not records:
        print("No predictions to verify")
        return 0
    print("Predictions:")
    for i, record in enumerate(records, 1):
        print(f"{i}. {record.statement} ({record.resolution_date}) - {record.status}")
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    index = args.index
    if index is None:
        listed = cmd_list(args)
        if listed != 0:
            return listed
        if not _make_service(args).list_commitments().data.get("commitments"):
            return 0
        print()
        raw = args.input("> Select number to verify: ")
        try:
            index = int(raw)
        except ValueError:
            return _fail([f"Invalid selection: {raw}"])

    service = _make_service(args, needs_ledger=True)
    result = service.verify(index)
    if not result.success:
        return _fail(result.errors)
    report = result.data["report"]
    print()
    _print_report(report)
    return 1 if report.tag == "FAIL" else 0


def cmd_verifyall(args: argparse.Namespace) -> int:
    service = _make_service(args, needs_ledger=True)
    listed = service.list_commitments()
    if not listed.success:
        return _fail(listed.errors)
    if not listed.data["commitments"]:
        print("No predictions to verify")
        return 0
    print("Verifying all predictions...")
    print()
    result = service.verify_all(on_report=_print_report)
    if not result.success:
        return _fail(result.errors)
    failed = sum(1 for r in result.data["reports"] if r.tag == "FAIL")
    return 1 if failed else 0


def cmd_tally(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.tally()
    if not result.success:
        return _fail(result.errors)
    for line in result.data["lines"]:
        print(line)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="augur",
        description="Augur — ledger-anchored prediction commitments",
    )
    parser.add_argument(
        "--env",
        type=Path,
        default=DEFAULT_ENV_FILE,
        help="Path to .env file (default: .env)",
    )
    parser.add_argument("--data-dir", type=Path, help="Override the record directory")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at INFO level")
    sub = parser.add_subparsers(dest="command")

    # predict
    p_pred = sub.add_parser("predict", help="Record and anchor a prediction")
    p_pred.add_argument("--statement", help="Prediction statement")
    p_pred.add_argument("--probability", help="Probability in percent (0-100)")
    p_pred.add_argument("--date", help="Resolution date (year/month/day)")

    # resolve
    p_res = sub.add_parser("resolve", help="Judge matured predictions")
    p_res.add_argument(
        "--answer",
        choices=["TRUE", "FALSE"],
        help="Apply one answer to every matured prediction",
    )

    # list
    sub.add_parser("list", help="List commitments with anchor status")

    # verify
    p_ver = sub.add_parser("verify", help="Verify one commitment")
    p_ver.add_argument("--index", type=int, help="1-based index from `augur list`")

    # verifyall
    sub.add_parser("verifyall", help="Verify every commitment in sequence")

    # tally
    sub.add_parser("tally", help="Print calibration buckets")

    return parser


def main(
    argv: list[str] | None = None,
    input_fn: InputFn = input,
    client_factory: Optional[ClientFactory] = None,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging(logging.INFO if args.verbose else logging.WARNING)
    args.input = input_fn
    args.client_factory = client_factory or make_client

    commands = {
        "predict": cmd_predict,
        "resolve": cmd_resolve,
        "list": cmd_list,
        "verify": cmd_verify,
        "verifyall": cmd_verifyall,
        "tally": cmd_tally,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except (ConfigError, RecordStoreError) as exc:
        return _fail([str(exc)])


if __name__ == "__main__":
    raise SystemExit(main())
