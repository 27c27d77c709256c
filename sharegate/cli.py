from __future__ import annotations

import argparse
import sys

from .db import ensure_tables, get_db
from .models import DownloadLog, File, SharedLink, User
from .security import create_token
from .service import ShareAccessService


def _open_session():
    ensure_tables()
    return next(get_db())


def _find_user(db, email: str) -> User:
    u = db.query(User).filter(User.email == email).first()
    if not u:
        print(f"Error: user '{email}' not found", file=sys.stderr)
        sys.exit(1)
    return u


def _print_file(f: File):
    limit = f.download_limit if f.download_limit is not None else "-"
    print(
        f"id={f.id} name={f.original_name} code={f.share_code or '-'} public={f.is_public} "
        f"locked={f.is_locked} downloads={f.download_count}/{limit} expires_at={f.expires_at}"
    )


def create_user(email: str):
    db = _open_session()
    try:
        if db.query(User).filter(User.email == email).first():
            print("Error: user already exists", file=sys.stderr)
            sys.exit(1)
        u = User(email=email)
        db.add(u)
        db.commit()
        print(f"id={u.id} email={u.email} created_at={u.created_at}")
    finally:
        db.close()


def issue_token(email: str):
    db = _open_session()
    try:
        u = _find_user(db, email)
        print(create_token(u.id))
    finally:
        db.close()


def list_files(email: str):
    db = _open_session()
    try:
        u = _find_user(db, email)
        files = db.query(File).filter(File.owner_id == u.id).order_by(File.id.asc()).all()
        for f in files:
            _print_file(f)
        if not files:
            print("(no files)")
    finally:
        db.close()


def revoke_link(link_id: int):
    db = _open_session()
    try:
        if db.get(SharedLink, link_id) is None:
            print(f"Error: share link {link_id} not found", file=sys.stderr)
            sys.exit(1)
        changed = ShareAccessService(db).revoke(link_id)
        print("Link revoked." if changed else "Link was already inactive.")
    finally:
        db.close()


def show_downloads(file_id: int, limit: int = 50):
    """Print the most recent audit rows for a file"""
    db = _open_session()
    try:
        f = db.get(File, file_id)
        if not f:
            print(f"Error: file {file_id} not found", file=sys.stderr)
            sys.exit(1)
        _print_file(f)
        logs = (
            db.query(DownloadLog)
            .filter(DownloadLog.file_id == file_id)
            .order_by(DownloadLog.downloaded_at.desc(), DownloadLog.id.desc())
            .limit(limit)
            .all()
        )
        for log in logs:
            via = f"link={log.shared_link_id}" if log.shared_link_id else "direct"
            print(f"  {log.downloaded_at} {log.download_method} {via} ip={log.downloader_ip or '-'}")
        if not logs:
            print("  (no downloads)")
    finally:
        db.close()


def _help(parser, cmd_parsers, command=None):
    if not command:
        parser.print_help()
        return
    sp = cmd_parsers.get(command)
    if sp is None:
        print(f"Unknown command: {command}", file=sys.stderr)
        parser.print_help()
        sys.exit(1)
    sp.print_help()


def main(argv=None):
    parser = argparse.ArgumentParser(prog="sharegate-cli", description="Sharegate share administration CLI")
    sub = parser.add_subparsers(dest="cmd", required=True)
    cmd_parsers = {}

    p_cu = sub.add_parser("create-user", help="Create a file owner"); cmd_parsers['create-user'] = p_cu
    p_cu.add_argument("--email", required=True)
    p_cu.set_defaults(func=lambda a: create_user(a.email))

    p_tok = sub.add_parser("issue-token", help="Print a bearer token for a user"); cmd_parsers['issue-token'] = p_tok
    p_tok.add_argument("--email", required=True)
    p_tok.set_defaults(func=lambda a: issue_token(a.email))

    p_ls = sub.add_parser("list-files", help="List a user's files and their share state"); cmd_parsers['list-files'] = p_ls
    p_ls.add_argument("--email", required=True)
    p_ls.set_defaults(func=lambda a: list_files(a.email))

    p_rev = sub.add_parser("revoke-link", help="Permanently deactivate a share link"); cmd_parsers['revoke-link'] = p_rev
    p_rev.add_argument("--id", dest="link_id", type=int, required=True)
    p_rev.set_defaults(func=lambda a: revoke_link(a.link_id))

    p_dl = sub.add_parser("downloads", help="Show the download history of a file"); cmd_parsers['downloads'] = p_dl
    p_dl.add_argument("--file-id", dest="file_id", type=int, required=True)
    p_dl.add_argument("--limit", type=int, default=50)
    p_dl.set_defaults(func=lambda a: show_downloads(a.file_id, a.limit))

    p_help = sub.add_parser("help", help="Show help or help for a command"); cmd_parsers['help'] = p_help
    p_help.add_argument("command", nargs="?")
    p_help.set_defaults(func=lambda a: _help(parser, cmd_parsers, a.command))

    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
