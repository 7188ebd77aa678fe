"""Run the kahoy command line tool with `python -m kahoy`."""

from kahoy.tool.kahoy import main

if __name__ == "__main__":
    main()
