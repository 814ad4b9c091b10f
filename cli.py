#!/usr/bin/env python3
"""
Renta Assistant CLI

Purpose
-------
Manage tax-return subjects locally and drive a conversational session with
TopChatAgent that fills in the Modelo 100 form as you talk.

Top-level entrypoints
---------------------
- subjects list
- onboard --subject ID --first-name STR --last-name STR [--identification DNI] [--previously-filed]
- chat --subject ID
- ask  --subject ID --text "MESSAGE" [--json]
- edit --subject ID (--set field=value ... | --file EDITS.json|yaml)
- progress --subject ID [--json]
- export --subject ID --fmt md|pdf

Every command accepts --store PATH (default: $RENTA_STORE_ROOT or ./local_store).

In-session slash commands
-------------------------
(available only after `chat` starts on a subject)

- /help
    Show available commands.

- /form
    Print the current form values by section.

- /progress
    Completion percentage, status and the fields still missing.

- /edit field=value [field=value ...]
    Review-surface edit. An empty value clears the field. Example:
      `/edit employmentIncome=23500.00 city=Sevilla`

- /export md|pdf
    Export the rendered form.

- /show packet
    Print the last TurnPacket (for debugging/inspection).

- /quit
    Exit the chat session.

Notes
-----
- Natural text is sent to the assistant; the DNI/NIE and full name are picked
  up from your answers automatically. Income, deductions and address are
  entered with /edit (or `renta edit`).
"""

from __future__ import annotations
import argparse, json, shlex, sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from tax_form import app_logger
from tax_form.error_handler import FormValidationError, PersistenceError, UnknownFieldError
from tax_form.form_schema import SECTIONS
from top_agent.local_store import LocalStore
from top_agent.controller import TopChatAgent

# ---------------- utils ----------------

def _load_edits_from_file(p: str | Path) -> Dict[str, Any]:
    p = Path(p)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        raw = yaml.safe_load(text)
    else:
        raw = json.loads(text)
    if not isinstance(raw, dict):
        raise ValueError(f"{p}: expected a mapping of field -> value")
    return raw

def _parse_assignments(items: List[str]) -> Dict[str, str]:
    """["city=Sevilla", "employmentIncome=23500"] -> {"city": "Sevilla", ...}"""
    out: Dict[str, str] = {}
    for item in items:
        if "=" not in item:
            raise ValueError(f"expected field=value, got {item!r}")
        name, value = item.split("=", 1)
        out[name.strip()] = value.strip()
    return out

def _fmt_form(fields: Dict[str, str]) -> str:
    lines = []
    for section in SECTIONS:
        lines.append(f"[{section.title}]")
        for f in section.fields:
            lines.append(f"  {f.name:22} {f.label[:34]:34} {fields.get(f.name, '-')}")
    return "\n".join(lines)

def _fmt_progress(prog: Dict[str, Any], left: Dict[str, List[str]]) -> str:
    lines = [f"Progreso: {prog['percent_complete']}% ({prog['status']})"]
    for section, names in left.items():
        lines.append(f"  falta en {section}: {', '.join(names)}")
    return "\n".join(lines)

def _print_chat_help():
    print(
        "Commands:\n"
        "  /help                               Show this help\n"
        "  /form                               Show current form values\n"
        "  /progress                           Completion and missing fields\n"
        "  /edit field=value [...]             Review-surface edit (empty value clears)\n"
        "  /export md|pdf                      Export the rendered form\n"
        "  /show packet                        Show last TurnPacket\n"
        "  /quit                               Exit\n"
    )

def _print_turn(out: Dict[str, Any]) -> None:
    print(out["reply"])
    if out.get("footer"):
        print(out["footer"])

def _open_agent(args) -> Optional[TopChatAgent]:
    store = LocalStore(args.store)
    agent = TopChatAgent(store)
    try:
        agent.open_subject(args.subject)
    except PersistenceError as e:
        print(f"cannot open subject {args.subject}: {e}", file=sys.stderr)
        return None
    return agent

# ---------------- subjects / onboarding ----------------

def cmd_subjects_list(args):
    store = LocalStore(args.store)
    rows = store.list_subjects()
    if not rows:
        print("No subjects.")
        return 0
    for r in rows:
        print(f"{r['subject']:>10} | {r['name'][:28]:28} | {r['percent_complete']:>3}% {r['status']:12} | {r['messages']} msgs")
    return 0

def cmd_onboard(args):
    store = LocalStore(args.store)
    agent = TopChatAgent(store)
    try:
        profile = agent.complete_onboarding(
            args.subject,
            first_name=args.first_name,
            last_name=args.last_name,
            identification=args.identification,
            previously_filed=args.previously_filed,
        )
    except (FormValidationError, PersistenceError) as e:
        print(str(e), file=sys.stderr)
        return 2
    print(f"Onboarded {args.subject}: {profile.first_name} {profile.last_name}")
    return 0

# ---------------- chat / ask ----------------

def _handle_edit(agent: TopChatAgent, edits: Dict[str, Any]) -> int:
    try:
        res = agent.edit(edits)
    except (UnknownFieldError, FormValidationError) as e:
        print(str(e), file=sys.stderr)
        return 2
    changed = ", ".join(res["applied_fields"]) or "(no changes)"
    print(f"Updated: {changed}")
    if res.get("error"):
        print(res["error"]["user_message"])
    return 0

def cmd_chat(args):
    store = LocalStore(args.store)
    if not store.is_onboarded(args.subject):
        print(f"Subject {args.subject} is not onboarded. Run `renta onboard` first.", file=sys.stderr)
        return 2
    agent = _open_agent(args)
    if agent is None:
        return 2

    print(f"Chatting on subject {args.subject}. Type '/help' for commands.")
    for m in agent.visible_messages()[-4:]:
        print(f"[{m.role}] {m.content}")

    last_packet: Optional[Dict[str, Any]] = None
    while True:
        try:
            line = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            print(); break
        if not line:
            continue

        if line.startswith("/"):
            cmd = line[1:].strip().split(" ", 1)
            name = cmd[0].lower()
            arg = cmd[1].strip() if len(cmd) > 1 else ""

            if name == "quit":
                break

            elif name == "help":
                _print_chat_help()
                continue

            elif name == "form":
                print(_fmt_form(agent.form()))
                continue

            elif name == "progress":
                print(_fmt_progress(agent.progress(), agent.whats_left()))
                continue

            elif name == "edit":
                try:
                    edits = _parse_assignments(shlex.split(arg))
                except ValueError as e:
                    print(f"usage: /edit field=value [...] ({e})"); continue
                if not edits:
                    print("usage: /edit field=value [...]"); continue
                _handle_edit(agent, edits)
                continue

            elif name == "export":
                fmt = (arg or "").lower()
                if fmt not in {"md","pdf"}:
                    print("usage: /export md|pdf"); continue
                try:
                    out = agent.export(fmt)
                except PersistenceError as e:
                    print(f"export failed: {e}"); continue
                print(f"Exported to {out['path']}")
                continue

            elif name == "show":
                if arg != "packet":
                    print("usage: /show packet"); continue
                print(json.dumps(last_packet or {"note":"(no packet yet)"}, indent=2, ensure_ascii=False))
                continue

            else:
                print("Unknown command. Type /help for options.")
                continue

        # Natural language fall-through
        out = agent.handle(line)
        last_packet = out["packet"]
        _print_turn(out)

    return 0

def cmd_ask(args):
    agent = _open_agent(args)
    if agent is None:
        return 2
    if not args.text.strip():
        print("--text must not be empty", file=sys.stderr); return 2
    out = agent.handle(args.text)
    if args.json:
        print(json.dumps(out, ensure_ascii=False, indent=2))
    else:
        _print_turn(out)
    return 0 if out["packet"]["ok"] else 1

# ---------------- review / progress / export ----------------

def cmd_edit(args):
    if not args.set and not args.file:
        print("Provide --set field=value (repeatable) or --file EDITS.json|yaml", file=sys.stderr)
        return 2
    try:
        edits: Dict[str, Any] = _load_edits_from_file(args.file) if args.file else {}
        edits.update(_parse_assignments(args.set or []))
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(str(e), file=sys.stderr)
        return 2
    agent = _open_agent(args)
    if agent is None:
        return 2
    return _handle_edit(agent, edits)

def cmd_progress(args):
    agent = _open_agent(args)
    if agent is None:
        return 2
    prog, left = agent.progress(), agent.whats_left()
    if args.json:
        print(json.dumps({"progress": prog, "missing": left}, ensure_ascii=False, indent=2))
    else:
        print(_fmt_progress(prog, left))
    return 0

def cmd_export(args):
    agent = _open_agent(args)
    if agent is None:
        return 2
    try:
        out = agent.export(args.fmt)
    except PersistenceError as e:
        print(str(e), file=sys.stderr); return 2
    print(out["path"])
    return 0

# ---------------- parser ----------------

def build_parser():
    p = argparse.ArgumentParser(prog="renta")
    p.add_argument("--store", help="store root (default: $RENTA_STORE_ROOT or ./local_store)")
    sub = p.add_subparsers(dest="cmd")

    # subjects
    p_subjects = sub.add_parser("subjects", help="local subjects")
    sub_subjects = p_subjects.add_subparsers(dest="sub")
    ps_list = sub_subjects.add_parser("list", help="list subjects with progress")
    ps_list.set_defaults(func=cmd_subjects_list)

    # onboard
    p_on = sub.add_parser("onboard", help="create/complete a subject profile")
    p_on.add_argument("--subject", required=True)
    p_on.add_argument("--first-name", required=True)
    p_on.add_argument("--last-name", required=True)
    p_on.add_argument("--identification", help="DNI/NIE")
    p_on.add_argument("--previously-filed", action="store_true")
    p_on.set_defaults(func=cmd_onboard)

    # chat
    p_chat = sub.add_parser("chat", help="interactive chat for a subject")
    p_chat.add_argument("--subject", required=True)
    p_chat.set_defaults(func=cmd_chat)

    # ask
    p_ask = sub.add_parser("ask", help="one-shot round-trip for a subject")
    p_ask.add_argument("--subject", required=True)
    p_ask.add_argument("--text", required=True)
    p_ask.add_argument("--json", action="store_true")
    p_ask.set_defaults(func=cmd_ask)

    # edit
    p_edit = sub.add_parser("edit", help="review-surface edits")
    p_edit.add_argument("--subject", required=True)
    p_edit.add_argument("--set", action="append", help="field=value (repeatable; empty value clears)")
    p_edit.add_argument("--file", help="path to JSON/YAML mapping of field -> value")
    p_edit.set_defaults(func=cmd_edit)

    # progress
    p_prog = sub.add_parser("progress", help="completion and missing fields")
    p_prog.add_argument("--subject", required=True)
    p_prog.add_argument("--json", action="store_true")
    p_prog.set_defaults(func=cmd_progress)

    # export
    p_exp = sub.add_parser("export", help="export the rendered form")
    p_exp.add_argument("--subject", required=True)
    p_exp.add_argument("--fmt", required=True, choices=["md","pdf"])
    p_exp.set_defaults(func=cmd_export)

    return p

def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "cmd", None):
        parser.print_help()
        return 0
    if args.cmd == "subjects" and not getattr(args, "sub", None):
        parser.parse_args([args.cmd, "-h"])
        return 0
    app_logger.configure()
    return args.func(args)

if __name__ == "__main__":
    raise SystemExit(main())
