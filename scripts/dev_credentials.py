"""
Developer credentials — RSA keypair and a signed access token.

Tokens are normally issued by the identity service; this script stands
in for it locally.

Usage:
    python scripts/dev_credentials.py keys
    python scripts/dev_credentials.py token --user-id user-1 --name "Ada Obi" --phone +2348012345678
"""

import argparse
import os
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


def generate_keys(output_dir: str = "keys") -> None:
    """Generate an RSA-2048 keypair and write PEM files."""
    keys_dir = Path(output_dir)
    keys_dir.mkdir(parents=True, exist_ok=True)

    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    private_path = keys_dir / "private.pem"
    private_path.write_bytes(private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ))

    public_path = keys_dir / "public.pem"
    public_path.write_bytes(private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ))

    print("RSA keypair generated:")
    print(f"  Private key: {private_path.resolve()}")
    print(f"  Public key:  {public_path.resolve()}")


def issue_token(user_id: str, name: str | None, phone: str | None) -> None:
    # Imported late: key loading reads the PEM files written by ``keys``
    from app.core.security import create_access_token

    print(create_access_token(user_id, name=name, phone=phone))


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("keys", help="write keys/private.pem and keys/public.pem")

    token = sub.add_parser("token", help="print a signed access token")
    token.add_argument("--user-id", required=True)
    token.add_argument("--name")
    token.add_argument("--phone")

    args = parser.parse_args()
    if args.command == "keys":
        generate_keys()
    else:
        issue_token(args.user_id, args.name, args.phone)


if __name__ == "__main__":
    # Run from project root
    os.chdir(Path(__file__).resolve().parent.parent)
    main()
