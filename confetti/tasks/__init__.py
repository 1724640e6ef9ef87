"""Task modules live here.

Each module declares one task with `@orchestrator.task(name=...)`; the CLI
discovers them by importing every module in this package.

Do not implement logic here unless it's shared helpers; keep tasks modular per file.
"""
