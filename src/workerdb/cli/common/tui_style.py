"""Questionary / prompt_toolkit theme for the workerdb CLI.

Selection prompts use the neutral cyan palette; confirmation prompts are
only ever shown before destructive namespace operations and use red.
"""

from __future__ import annotations

from prompt_toolkit.styles import Style

_BASE = {
    "separator": "ansibrightblack",
    "instruction": "ansibrightblack",
    "error": "bold ansired",
    "disabled": "ansibrightblack",
}

QUESTIONARY_STYLE_SELECT = Style.from_dict(
    {
        **_BASE,
        "question": "bold ansicyan",
        "answer": "bold ansibrightcyan",
        "pointer": "bold ansibrightcyan",
        "highlighted": "bold ansibrightcyan",
        "selected": "bold ansibrightcyan",
        "checkbox": "ansibrightblack",
        "checkbox-selected": "bold ansibrightcyan",
    }
)

QUESTIONARY_STYLE_CONFIRM = Style.from_dict(
    {
        **_BASE,
        "question": "bold ansibrightred",
        "answer": "bold ansibrightred",
        "pointer": "bold ansibrightred",
        "highlighted": "bold ansibrightred",
        "selected": "bold ansibrightred",
    }
)
