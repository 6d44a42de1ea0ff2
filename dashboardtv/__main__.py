"""
DashboardTV - rotating dashboard display

Cycles through dashboard URLs pushed from a companion application and can
ask a local LLM server (Ollama, TinyLLM or TinyChat) to reorder them.

Quick Start:
    pip install -e .
    dashboardtv configure config.json
    dashboardtv run
"""

from dashboardtv.cli.cli import main

if __name__ == "__main__":
    main()
