"""
Entry point for running the engine as a module.

Usage:
    python -m timetable_engine generate request.json -o result.json
    python -m timetable_engine validate request.json
    python -m timetable_engine view result.json --class c1
"""

from timetable_engine.cli import main

if __name__ == "__main__":
    main()
