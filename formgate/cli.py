from __future__ import annotations

import argparse
import dataclasses
import json
from typing import Any

from .config import Settings, load_settings
from .errors import FormGateError
from .mail import MailTransport, Sender, get_mailer
from .mail.templates import check_message
from .ratelimit import RateLimitPolicy

_SECRET_FIELDS = {"smtp_password", "sendgrid_api_key", "chat_api_key"}


def _mask(value: Any) -> Any:
    if not value:
        return value
    s = str(value)
    return "****" if len(s) <= 8 else f"{s[:4]}****"


def effective_config(settings: Settings) -> dict[str, Any]:
    out: dict[str, Any] = {"environment": settings.environment}
    for f in dataclasses.fields(settings):
        value = getattr(settings, f.name)
        if f.name in _SECRET_FIELDS:
            value = _mask(value)
        elif isinstance(value, RateLimitPolicy):
            value = dataclasses.asdict(value)
        elif isinstance(value, tuple):
            value = list(value)
        out[f.name] = value
    return out


def cmd_show_config(settings: Settings) -> None:
    print(json.dumps(effective_config(settings), indent=2, sort_keys=True))


def cmd_check_mail(settings: Settings, *, to: str | None, mailer: MailTransport | None = None) -> None:
    recipient = to or settings.admin_email
    if not recipient:
        raise SystemExit("No recipient: pass --to or set ADMIN_EMAIL")
    if not settings.mail_from_email:
        raise SystemExit("No sender: set MAIL_FROM_EMAIL or EMAIL_USER")

    mailer = mailer or get_mailer(settings)
    sender = Sender(email=settings.mail_from_email, brand=settings.brand_name, admin_email=recipient)
    message = check_message(sender, to=recipient, environment=settings.environment)
    try:
        msg_id = mailer.send(message)
    except FormGateError as e:
        raise SystemExit(f"Mail check failed via {mailer.name}: {e.detail}") from e
    print(f"Sent test message via {mailer.name} to {recipient} msg_id={msg_id or '-'}")


def cmd_serve(*, host: str, port: int, reload: bool) -> None:
    import uvicorn

    uvicorn.run("formgate.main:app", host=host, port=port, reload=reload)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="formgate")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_serve = sub.add_parser("serve", help="Run the API locally with uvicorn.")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8080)
    p_serve.add_argument("--reload", action="store_true")

    sub.add_parser("show-config", help="Print the effective configuration (secrets masked).")

    p_mail = sub.add_parser("check-mail", help="Send one test message through the configured mail transport.")
    p_mail.add_argument("--to", default=None, help="Recipient (defaults to ADMIN_EMAIL)")

    args = parser.parse_args(argv)

    if args.cmd == "serve":
        cmd_serve(host=str(args.host), port=int(args.port), reload=bool(args.reload))
    elif args.cmd == "show-config":
        cmd_show_config(load_settings())
    elif args.cmd == "check-mail":
        cmd_check_mail(load_settings(), to=args.to)


if __name__ == "__main__":
    main()
