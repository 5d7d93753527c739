"""Lesson documentation builder package.

This package renders tutorial lessons written as markdown templates into
finished documentation. A lesson template may contain hidden-comment marker
lines that are replaced by embedded source files, pretty-printed values of
companion evaluation files, or the captured output of a sandboxed run script.

Package Structure
-----------------
- `pipeline/lesson_generator/`:
    Marker extraction, file embedding, self-evaluation, command rewriting,
    sandboxed execution and the lesson renderer that ties them together.
- `program_render_lessons.py`: Command-line entry point (``render-lessons``).
- `config.py`: All configuration constants, as UPPER_SNAKE_CASE.
- `exceptions.py`: Project-specific exception classes.
- `fs_utils.py`: Guarded removal of generated directory trees.

Examples
--------
>>> import lessondocs
>>> # See lessondocs.pipeline.lesson_generator.runner for entrypoints.
"""
