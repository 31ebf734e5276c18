#!/usr/bin/env python3
"""
Generate a development RSA key pair and a sample officer access token.

The API only needs JWT_PUBLIC_KEY; the private key stands in for the
identity service when exercising the DOB endpoints locally.
"""

import os
import sys
import argparse
from datetime import timedelta

import jwt

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.base import utc_now
from services.auth import generate_key_pair


def issue_token(private_pem: str, cpo_id: str, name: str, ttl_minutes: int) -> str:
    now = utc_now()
    payload = {
        "sub": cpo_id,
        "name": name,
        "type": "access",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl_minutes)).timestamp())
    }
    return jwt.encode(payload, private_pem, algorithm="RS256")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--cpo-id", default="cpo-dev")
    parser.add_argument("--name", default="Development Officer")
    parser.add_argument("--ttl-minutes", type=int, default=60)
    args = parser.parse_args()

    private_key, public_key = generate_key_pair()

    print("=== JWT PUBLIC KEY ===")
    print(public_key)

    print("\n=== Environment Variables ===")
    newline = "\\n"
    print(f'JWT_PUBLIC_KEY="{public_key.replace(chr(10), newline)}"')

    print(f"\n=== Access token for {args.cpo_id} ===")
    print(issue_token(private_key, args.cpo_id, args.name, args.ttl_minutes))
