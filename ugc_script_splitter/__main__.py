"""Package entry point for ``python -m ugc_script_splitter``.

WHY: Users run the splitter as ``python -m ugc_script_splitter script.txt``
for CLI mode, or ``python -m ugc_script_splitter --serve`` for the HTTP API.

HOW: Delegates to the CLI's main(), which handles both.

RULES:
- This file must exist for ``python -m ugc_script_splitter`` to work
"""

if __name__ == "__main__":
    from ugc_script_splitter.cli import main
    main()
