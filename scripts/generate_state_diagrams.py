"""
Render Mermaid state diagrams from the promotion and handover transition tables.

Usage:
    python scripts/generate_state_diagrams.py                        # print to stdout
    python scripts/generate_state_diagrams.py --update docs/STATES.md  # rewrite the marked section
    python scripts/generate_state_diagrams.py --check docs/STATES.md   # fail when out of sync (CI)
"""
import argparse
import re
import sys
from enum import Enum
from pathlib import Path
from typing import Mapping, Sequence

# make the reach package importable when run from a checkout
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from reach.db.models.handover import HandoverStatus
from reach.db.models.tracking_link import PromotionStatus
from reach.domain.transitions import HANDOVER_TRANSITIONS, PROMOTION_TRANSITIONS

START_MARKER = "<!-- STATE_DIAGRAMS_START -->"
END_MARKER = "<!-- STATE_DIAGRAMS_END -->"

PROMOTION_LABELS: dict[str, str] = {
    PromotionStatus.ACTIVE.value: "Active",
    PromotionStatus.PAUSED.value: "Paused",
    PromotionStatus.STOPPED.value: "Stopped",
    PromotionStatus.EXPIRED.value: "Expired",
}

HANDOVER_LABELS: dict[str, str] = {
    HandoverStatus.PAYMENT_CONFIRMED.value: "Payment confirmed",
    HandoverStatus.PENDING_DEVELOPER_DOCS.value: "Waiting for developer documents",
    HandoverStatus.DOCS_SUBMITTED.value: "Documents submitted",
    HandoverStatus.DOCS_VERIFIED.value: "Documents verified",
    HandoverStatus.REACH_SIGNED.value: "Signed by Reach",
    HandoverStatus.BUYER_SIGNED.value: "Signed by buyer",
    HandoverStatus.KEYS_RELEASED.value: "Keys released",
    HandoverStatus.KEYS_DELIVERED.value: "Keys delivered",
    HandoverStatus.COMPLETED.value: "Completed",
}


def generate_mermaid_from_transitions(
    transitions: Mapping[Enum, Sequence[Enum]],
    labels: dict[str, str],
    initial: Enum,
) -> str:
    """
    Build a stateDiagram-v2 from a transition table.

    Statuses with no outgoing transitions are drawn as terminal.
    """
    lines: list[str] = ["stateDiagram-v2"]

    all_states: set[str] = set()
    for source, targets in transitions.items():
        all_states.add(source.value)
        for target in targets:
            all_states.add(target.value)

    for state_value in sorted(all_states):
        lines.append(f"    {state_value} : {labels.get(state_value, state_value)}")

    lines.append("")
    lines.append(f"    [*] --> {initial.value}")
    lines.append("")

    for source, targets in transitions.items():
        for target in targets:
            lines.append(f"    {source.value} --> {target.value}")
        if not targets:
            lines.append(f"    {source.value} --> [*]")

    return "\n".join(lines)


def generate_all_diagrams() -> dict[str, str]:
    return {
        "Promotion (PromotionStatus)": generate_mermaid_from_transitions(
            PROMOTION_TRANSITIONS, PROMOTION_LABELS, PromotionStatus.ACTIVE,
        ),
        "Handover (HandoverStatus)": generate_mermaid_from_transitions(
            HANDOVER_TRANSITIONS, HANDOVER_LABELS, HandoverStatus.PAYMENT_CONFIRMED,
        ),
    }


def format_diagrams_as_markdown(diagrams: dict[str, str]) -> str:
    sections: list[str] = []
    for name, mermaid_code in diagrams.items():
        sections.append(f"#### {name}\n")
        sections.append(f"```mermaid\n{mermaid_code}\n```\n")
    return "\n".join(sections)


def _section(markdown_content: str) -> str:
    return f"{START_MARKER}\n\n### State diagrams\n\n{markdown_content}\n{END_MARKER}"


_SECTION_RE = re.compile(re.escape(START_MARKER) + r".*?" + re.escape(END_MARKER), re.DOTALL)


def update_document(path: Path, markdown_content: str) -> None:
    """Replace the marked section, or append one when the file has none."""
    content = path.read_text(encoding="utf-8") if path.exists() else ""
    new_section = _section(markdown_content)

    if START_MARKER in content:
        content = _SECTION_RE.sub(lambda _: new_section, content)
    else:
        content = (content.rstrip() + "\n\n" if content else "") + new_section + "\n"

    path.write_text(content, encoding="utf-8")
    print(f"Updated: {path}")


def check_document(path: Path, markdown_content: str) -> bool:
    """True when the marked section in ``path`` matches the transition tables."""
    if not path.exists():
        print(f"Error: {path} does not exist")
        return False

    match = _SECTION_RE.search(path.read_text(encoding="utf-8"))
    if not match:
        print(f"Error: no state diagram section in {path}")
        return False

    if match.group(0) == _section(markdown_content):
        print("State diagrams are in sync")
        return True

    print(f"Error: state diagrams in {path} are out of date")
    print(f"Run: python scripts/generate_state_diagrams.py --update {path}")
    return False


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Render Mermaid diagrams of the promotion and handover lifecycles"
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--update", metavar="FILE", type=Path, help="rewrite the diagram section of FILE")
    group.add_argument("--check", metavar="FILE", type=Path, help="exit 1 when FILE is out of sync (CI)")
    args = parser.parse_args(argv)

    markdown = format_diagrams_as_markdown(generate_all_diagrams())

    if args.check:
        sys.exit(0 if check_document(args.check, markdown) else 1)
    elif args.update:
        update_document(args.update, markdown)
    else:
        print(markdown)


if __name__ == "__main__":
    main()
