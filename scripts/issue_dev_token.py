#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from jobly.security import JwtSecurityConfig, decode_token, issue_token


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Issue an HS256 bearer token for local API testing")
    parser.add_argument("username", help="subject claim value")
    parser.add_argument("--admin", action="store_true", help="set the admin claim to true")
    args = parser.parse_args(argv)

    cfg = JwtSecurityConfig.from_env()
    if not cfg.shared_secret:
        raise SystemExit("JWT_SHARED_SECRET is required")

    token = issue_token(subject=args.username, is_privileged=args.admin, cfg=cfg)
    identity = decode_token(token, cfg)
    print(
        json.dumps(
            {"token": token, "subject": identity.subject, "is_admin": identity.is_privileged},
            ensure_ascii=True,
            sort_keys=True,
            indent=2,
        )
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
