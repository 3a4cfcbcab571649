"""Entry point: python -m memo <command>"""

from memo.cli import main

if __name__ == "__main__":
    main()
