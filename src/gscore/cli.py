#!/usr/bin/env python3
"""
gscore CLI — Score GitHub profiles from the terminal.

Runs the pipeline in-process (no server required), configured from the
same environment variables as the API.

Commands:
    score       - Score one profile (no storage)
    batch       - Rank several profiles, from arguments or a file
    verify      - Score, attest and store a profile for a wallet
    check       - Verification status of a stored score
    flag        - Latest flag for a profile
    leaderboard - Ranked latest scores from the ledger
    serve       - Run the HTTP API
"""

import argparse
import asyncio
import json
import sys
from typing import Optional

from gscore.errors import GScoreError
from gscore.leaderboard import find_rank


def _output(data: dict, args: argparse.Namespace, human_fn=None):
    """Output data as JSON or pretty-printed."""
    if getattr(args, 'json', False):
        print(json.dumps(data, indent=2, default=str))
    elif human_fn:
        human_fn(data)
    else:
        print(json.dumps(data, indent=2, default=str))


def _build_service():
    from gscore.config import Settings
    from gscore.service import ScoreService
    return ScoreService.from_settings(Settings.from_env())


# ─── Commands ──────────────────────────────────────────────────────

def cmd_score(args):
    """Score one profile."""
    report = asyncio.run(args.service.compute(args.username, args.token))
    result = {"github_username": report.metrics.identity, **report.to_dict()}

    def human(d):
        raw = d["raw_data"]
        print(f"⭐ {d['github_username']}: {d['score']} / 1000")
        print(f"   Followers:    {raw['followers']}")
        print(f"   Stars:        {raw['total_stars']}")
        print(f"   Public repos: {raw['public_repos']}")
        print(f"   Activity:     {raw['avg_recent_activity']:.2f}")
        print(f"   Collaborates: {'yes' if raw['collaboration_diversity'] else 'no'}")
        for repo in raw["top_repos"]:
            print(f"     • {repo['name']} ({repo['stars']}★)")

    _output(result, args, human)
    return result


def cmd_batch(args):
    """Rank several profiles."""
    from gscore.batch import parse_identities

    text = "\n".join(args.usernames)
    if args.file == "-":
        text += "\n" + sys.stdin.read()
    elif args.file:
        with open(args.file) as f:
            text += "\n" + f.read()
    identities = parse_identities(text)
    if not identities:
        raise GScoreError("No GitHub usernames given")

    report = asyncio.run(args.service.run_batch(identities, args.token, attest=args.attest))
    result = report.to_dict()

    def human(d):
        s = d["summary"]
        print(f"📊 {s['scored']}/{s['total']} scored in {s['elapsed_ms']:.0f} ms")
        for row in s["top_performers"]:
            print(f"   #{row['rank']} {row['identity']:<20} {row['score']:>4}  ({row['verification']})")
        if s["standout_repos"]:
            print("   Standout repos:")
            for repo in s["standout_repos"]:
                print(f"     • {repo['owner']}/{repo['name']} ({repo['stars']}★)")
        for r in d["results"]:
            if r["status"] == "error":
                print(f"   ❌ {r['identity']}: {r['error']}")

    _output(result, args, human)
    return result


def cmd_verify(args):
    """Score, attest and store."""
    receipt = asyncio.run(args.service.verify_and_store(args.wallet, args.username, args.token))
    result = receipt.to_dict()

    def human(d):
        print(f"✅ Stored {d['score']} for {d['github_username']}")
        print(f"   Wallet:      {d['wallet_address']}")
        print(f"   Tx:          {d['transaction_hash']}")
        print(f"   Attestation: {d['attestation_id']}")

    _output(result, args, human)
    return result


def cmd_check(args):
    """Verification status of a stored score."""
    status = asyncio.run(args.service.check_verification(args.wallet, args.username))
    result = {"verified": status.verified, "attestation_id": status.attestation_id}

    def human(d):
        if d["verified"]:
            print(f"✅ Verified ({d['attestation_id']})")
        else:
            print("❌ Not verified")

    _output(result, args, human)
    return result


def cmd_flag(args):
    """Latest flag for a profile."""
    result = args.service.flag_status(args.username).to_dict()

    def human(d):
        if d["flagged"]:
            entry = d["entry"]
            print(f"🚩 {entry['identity']} flagged: {entry['reason']}")
            if entry.get("wallet"):
                print(f"   Wallet: {entry['wallet']}")
        else:
            print(f"✅ {args.username} is not flagged")

    _output(result, args, human)
    return result


def cmd_leaderboard(args):
    """Ranked latest scores."""
    entries = asyncio.run(args.service.leaderboard())
    result = {"total": len(entries), "entries": [e.to_dict() for e in entries[:args.top]]}
    if args.wallet:
        mine = find_rank(entries, args.wallet)
        result["wallet_entry"] = mine.to_dict() if mine else None

    def human(d):
        print(f"🏆 Leaderboard ({d['total']} wallets)")
        for e in d["entries"]:
            print(f"   #{e['rank']:<3} {e['identity']:<20} {e['score']:>4}  {e['wallet']}")
        if args.wallet:
            mine = d["wallet_entry"]
            if mine:
                print(f"   {args.wallet} is #{mine['rank']} ({mine['identity']}, {mine['score']})")
            else:
                print(f"   {args.wallet} has no stored score")

    _output(result, args, human)
    return result


def cmd_serve(args):
    """Run the API under uvicorn."""
    import uvicorn

    from gscore.api import create_app

    app = create_app(args.service)
    port = args.port or args.service.settings.port
    uvicorn.run(app, host=args.host, port=port)


# ─── Parser ────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gscore",
        description="gscore — GitHub reputation scores bound to wallets",
    )
    parser.add_argument("--json", action="store_true", help="Machine-readable JSON output")

    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("score", help="Score one profile (no storage)")
    p.add_argument("username", help="GitHub username or profile URL")
    p.add_argument("-t", "--token", help="GitHub token (defaults to GITHUB_TOKEN)")

    p = sub.add_parser("batch", help="Rank several profiles")
    p.add_argument("usernames", nargs="*", help="GitHub usernames or profile URLs")
    p.add_argument("-f", "--file", help="Read usernames from a file (- for stdin)")
    p.add_argument("-t", "--token", help="GitHub token (defaults to GITHUB_TOKEN)")
    p.add_argument("-a", "--attest", action="store_true", help="Attach attestation ids")

    p = sub.add_parser("verify", help="Score, attest and store for a wallet")
    p.add_argument("wallet", help="Wallet address (0x…)")
    p.add_argument("username", help="GitHub username")
    p.add_argument("-t", "--token", help="GitHub token (defaults to GITHUB_TOKEN)")

    p = sub.add_parser("check", help="Verification status of a stored score")
    p.add_argument("wallet", help="Wallet address (0x…)")
    p.add_argument("username", help="GitHub username")

    p = sub.add_parser("flag", help="Latest flag for a profile")
    p.add_argument("username", help="GitHub username")

    p = sub.add_parser("leaderboard", help="Ranked latest scores")
    p.add_argument("-n", "--top", type=int, default=20, help="Rows to show")
    p.add_argument("-w", "--wallet", help="Also show this wallet's rank")

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("-p", "--port", type=int, help="Port (defaults to PORT or 3001)")

    return parser


def main(argv: Optional[list[str]] = None, service=None) -> Optional[dict]:
    """CLI entry point. Returns result dict for testing."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "score": cmd_score,
        "batch": cmd_batch,
        "verify": cmd_verify,
        "check": cmd_check,
        "flag": cmd_flag,
        "leaderboard": cmd_leaderboard,
        "serve": cmd_serve,
    }

    try:
        args.service = service or _build_service()
        return commands[args.command](args)
    except FileNotFoundError as e:
        print(f"❌ File not found: {e}", file=sys.stderr)
        sys.exit(1)
    except GScoreError as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
