"""
Main entry point for SecurePass.

A command-line front over the credential repository. `--local` keeps
accounts and credentials in files on this device; otherwise the Supabase
project named by SECUREPASS_SUPABASE_URL / SECUREPASS_SUPABASE_KEY is used.
"""

import argparse
import asyncio
import logging
import os
import sys
from getpass import getpass
from typing import List, Optional

from PyQt5.QtCore import QTimer
from PyQt5.QtWidgets import QApplication

from . import config
from .auth import AuthProvider, LocalAuthProvider, SupabaseAuthProvider, validate_new_password
from .clipboard import ClipboardHelper
from .display import describe, favicon_url
from .errors import SecurePassError
from .filtering import filter_records
from .gateway import RemoteStoreGateway, SupabaseGateway
from .local_store import LocalStoreGateway, read_json, write_json_atomic
from .models import CredentialDraft, Session
from .repository import CredentialRepository

logger = logging.getLogger(__name__)

EDIT_OPTIONS = {
    "site": "site_name",
    "url": "site_url",
    "login": "login_name",
    "email": "login_email",
    "note": "note",
}


class SecurePassApp:
    """Wires the auth provider, gateway and repository for one command."""

    def __init__(self, home: str = config.CONFIG_DIR, local: bool = False,
                 supabase_url: str = config.SUPABASE_URL, supabase_key: str = config.SUPABASE_KEY,
                 timeout: float = config.GATEWAY_TIMEOUT_SECONDS):
        self.home = home
        self.local = local
        self.supabase_url = supabase_url
        self.supabase_key = supabase_key
        self.timeout = timeout
        self.session_path = os.path.join(home, config.SESSION_FILE)
        self.auth: Optional[AuthProvider] = None
        self.gateway: Optional[RemoteStoreGateway] = None
        self.clipboard: Optional[ClipboardHelper] = None

    def auth_provider(self) -> AuthProvider:
        if self.auth is None:
            if self.local:
                self.auth = LocalAuthProvider(os.path.join(self.home, config.LOCAL_USERS_FILE))
            else:
                self.auth = SupabaseAuthProvider(self.supabase_url, self.supabase_key)
        return self.auth

    def gateway_for(self, session: Session) -> RemoteStoreGateway:
        if self.gateway is None:
            if self.local:
                self.gateway = LocalStoreGateway(os.path.join(self.home, config.LOCAL_RECORDS_FILE))
            else:
                self.gateway = SupabaseGateway(self.supabase_url, self.supabase_key, session)
        return self.gateway

    def save_session(self, session: Session) -> None:
        write_json_atomic(self.session_path, {"local": self.local, "session": session.to_dict()})

    def load_session(self) -> Session:
        try:
            data = read_json(self.session_path, None)
            if data and data.get("local") == self.local:
                return Session.from_dict(data["session"])
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable session file {self.session_path}: {e}")
        raise SecurePassError("Not signed in. Run `securepass login` first")

    async def current_session(self) -> Session:
        """The saved session, refreshed and saved again if its access token has expired."""
        session = self.load_session()
        refreshed = await self.auth_provider().refresh(session)
        if refreshed != session:
            self.save_session(refreshed)
        return refreshed

    def forget_session(self) -> None:
        if os.path.exists(self.session_path):
            os.remove(self.session_path)

    async def repository(self) -> CredentialRepository:
        """A repository for the saved session, loaded from the store."""
        session = await self.current_session()
        repo = CredentialRepository(self.gateway_for(session), session, timeout=self.timeout)
        result = await repo.load()
        result.unwrap()
        return repo

    async def run(self, args: argparse.Namespace) -> int:
        """Run one parsed command. Returns the process exit code."""
        logger.debug(f"Running {args.command} (local={self.local})")
        try:
            return await COMMANDS[args.command](self, args)
        except SecurePassError as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return 1

    def wait_for_clipboard(self) -> None:
        """Run the Qt event loop until a copied secret has been cleared."""
        qt_app = QApplication.instance() or QApplication(sys.argv[:1])
        QTimer.singleShot(self.clipboard.clear_timeout_ms + 100, qt_app.quit)
        qt_app.exec_()

    async def cleanup(self) -> None:
        """Clean up resources."""
        if self.gateway is not None:
            await self.gateway.aclose()
        if self.auth is not None:
            await self.auth.aclose()


async def cmd_signup(app: SecurePassApp, args: argparse.Namespace) -> int:
    password = getpass("Password: ")
    session = await app.auth_provider().sign_up(args.username, password, email=args.email)
    app.save_session(session)
    print(f"Welcome, {session.username}")
    return 0


async def cmd_login(app: SecurePassApp, args: argparse.Namespace) -> int:
    password = getpass("Password: ")
    session = await app.auth_provider().sign_in(args.identifier, password)
    app.save_session(session)
    print(f"Welcome, {session.username}")
    return 0


async def cmd_logout(app: SecurePassApp, args: argparse.Namespace) -> int:
    session = app.load_session()
    try:
        await app.auth_provider().sign_out(session)
    finally:
        app.forget_session()
    print("Signed out")
    return 0


async def cmd_reset(app: SecurePassApp, args: argparse.Namespace) -> int:
    await app.auth_provider().reset_password(args.email)
    print(f"Password reset instructions sent to {args.email}")
    return 0


async def cmd_profile(app: SecurePassApp, args: argparse.Namespace) -> int:
    session = await app.current_session()
    session = await app.auth_provider().update_profile(session, email=args.email, phone_number=args.phone)
    app.save_session(session)
    print("Profile updated successfully!")
    return 0


async def cmd_passwd(app: SecurePassApp, args: argparse.Namespace) -> int:
    session = await app.current_session()
    current = getpass("Current password: ")
    new = getpass("New password: ")
    confirm = getpass("Confirm new password: ")
    validate_new_password(new, confirm)
    await app.auth_provider().change_password(session, current, new)
    print("Password changed successfully!")
    return 0


async def cmd_list(app: SecurePassApp, args: argparse.Namespace) -> int:
    repo = await app.repository()
    records = filter_records(repo.records, getattr(args, "term", "") or "")
    if not records:
        print("No passwords saved yet" if not len(repo) else "No matching passwords")
        return 0
    for record in records:
        print(describe(record, revealed=args.reveal))
        if args.verbose_icons:
            icon = favicon_url(record)
            if icon:
                print(f"    icon: {icon}")
    return 0


async def cmd_add(app: SecurePassApp, args: argparse.Namespace) -> int:
    repo = await app.repository()
    secret = args.secret if args.secret is not None else getpass("Secret: ")
    draft = CredentialDraft(
        site_name=args.site,
        login_name=args.login,
        secret_value=secret,
        site_url=args.url,
        login_email=args.email,
        note=args.note,
    )
    record = (await repo.create(draft)).unwrap()
    print(f"Added {record.id}")
    return 0


async def cmd_edit(app: SecurePassApp, args: argparse.Namespace) -> int:
    repo = await app.repository()
    changes = {field: getattr(args, option) for option, field in EDIT_OPTIONS.items()
               if getattr(args, option) is not None}
    if args.new_secret:
        changes["secret_value"] = getpass("New secret: ")
    if not changes:
        print("Nothing to change")
        return 0
    record = (await repo.update(args.id, changes)).unwrap()
    print(f"Updated {record.id}")
    return 0


async def cmd_delete(app: SecurePassApp, args: argparse.Namespace) -> int:
    repo = await app.repository()
    (await repo.delete(args.id)).unwrap()
    print(f"Deleted {args.id}")
    return 0


async def cmd_copy(app: SecurePassApp, args: argparse.Namespace) -> int:
    if not config.CLIPBOARD_CLEAR_TIMEOUT_MIN_SECONDS <= args.clear_after <= config.CLIPBOARD_CLEAR_TIMEOUT_MAX_SECONDS:
        print(f"--clear-after must be between {config.CLIPBOARD_CLEAR_TIMEOUT_MIN_SECONDS} "
              f"and {config.CLIPBOARD_CLEAR_TIMEOUT_MAX_SECONDS} seconds", file=sys.stderr)
        return 1
    repo = await app.repository()
    record = repo.get(args.id).unwrap()
    helper = ClipboardHelper(clear_timeout_ms=args.clear_after * 1000)
    if args.field == "login":
        helper.copy_text(record.login_name, "Username")
        return 0
    if args.field == "email":
        if not record.login_email:
            print("No email saved for this credential")
            return 1
        helper.copy_text(record.login_email, "Email")
        return 0
    helper.copy_secret(record)
    # main() waits for the clear once the asyncio loop has finished.
    app.clipboard = helper
    print(f"Password copied to clipboard (auto-clear in {args.clear_after}s)")
    return 0


COMMANDS = {
    "signup": cmd_signup,
    "login": cmd_login,
    "logout": cmd_logout,
    "reset": cmd_reset,
    "profile": cmd_profile,
    "passwd": cmd_passwd,
    "list": cmd_list,
    "search": cmd_list,
    "add": cmd_add,
    "edit": cmd_edit,
    "delete": cmd_delete,
    "copy": cmd_copy,
}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="securepass", description=f"{config.APP_NAME} v{config.APP_VERSION}",
                                epilog=config.APP_NOTICE)
    p.add_argument("--local", action="store_true", help="use the local prototype store on this device")
    p.add_argument("--home", default=config.CONFIG_DIR, help="directory for local files and the saved session")
    p.add_argument("--timeout", type=float, default=config.GATEWAY_TIMEOUT_SECONDS,
                   help="seconds to wait for each store call")
    p.add_argument("-v", "--verbose", action="store_true", help="log progress to stderr")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("signup", help="create an account")
    s.add_argument("username")
    s.add_argument("--email")

    s = sub.add_parser("login", help="sign in (username locally, email otherwise)")
    s.add_argument("identifier")

    sub.add_parser("logout", help="sign out")

    s = sub.add_parser("reset", help="send a password reset email")
    s.add_argument("email")

    s = sub.add_parser("profile", help="update email and phone number")
    s.add_argument("--email")
    s.add_argument("--phone")

    sub.add_parser("passwd", help="change the account password")

    for name in ("list", "search"):
        s = sub.add_parser(name, help=f"{name} saved credentials")
        if name == "search":
            s.add_argument("term")
        s.add_argument("--reveal", action="store_true", help="show secrets")
        s.add_argument("--icons", dest="verbose_icons", action="store_true", help="show favicon URLs")

    s = sub.add_parser("add", help="save a credential")
    s.add_argument("--site", required=True)
    s.add_argument("--login", required=True)
    s.add_argument("--url")
    s.add_argument("--email")
    s.add_argument("--note")
    s.add_argument("--secret", help="secret value; prompted for when omitted")

    s = sub.add_parser("edit", help="change a saved credential")
    s.add_argument("id")
    for option in EDIT_OPTIONS:
        s.add_argument(f"--{option}")
    s.add_argument("--new-secret", action="store_true", help="prompt for a new secret")

    s = sub.add_parser("delete", help="delete a saved credential")
    s.add_argument("id")

    s = sub.add_parser("copy", help="copy a field to the clipboard")
    s.add_argument("id")
    s.add_argument("--field", choices=("secret", "login", "email"), default="secret")
    s.add_argument("--clear-after", type=int, default=config.CLIPBOARD_CLEAR_TIMEOUT_DEFAULT_SECONDS,
                   help="seconds before a copied secret is cleared")
    return p


async def _run(app: SecurePassApp, args: argparse.Namespace) -> int:
    try:
        return await app.run(args)
    finally:
        await app.cleanup()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, format=config.LOG_FORMAT)
    app = SecurePassApp(home=args.home, local=args.local, timeout=args.timeout)
    code = asyncio.run(_run(app, args))
    if app.clipboard is not None and app.clipboard.pending:
        app.wait_for_clipboard()
    return code


if __name__ == "__main__":
    sys.exit(main())
