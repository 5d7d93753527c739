"""Lesson generator pipeline package.

Public API of the lesson rendering subpipeline: marker extraction, file
embedding, self evaluation, run-script rewriting, sandboxed execution and
the renderer that combines them. Consumers (the CLI, a site build, tests)
should import from this package rather than from the submodules.

Examples
--------
>>> from lessondocs.pipeline.lesson_generator import run_from_config
>>> rendered = run_from_config(lessons_dir=Path("lessons"))  # doctest: +SKIP
>>> rendered[0].output_file_path  # doctest: +SKIP
PurePosixPath('lessons/001-intro/lesson.md')
"""

from .commands import CommandRewriter, EvalArguments, RewriteRule, parse_eval_arguments
from .config import LessonBuildConfig
from .data_loader import discover_lessons, load_lesson, load_lessons
from .evaluation import (
    EvaluationContext,
    Evaluator,
    NixEvaluator,
    build_evaluation_map,
    substitute_self,
)
from .markers import Marker, MarkerKind, extract, extract_captures, find_markers
from .processor import (
    Lesson,
    LessonRenderer,
    RenderedLesson,
    apply_replacement_passes,
    output_paths,
)
from .runner import (
    build_renderer,
    configure_logging,
    copy_lessons_to_site,
    render_lessons,
    run_from_config,
    write_rendered_lessons,
)
from .sandbox import SandboxRunner, SandboxSettings, sandbox_workspace
from .templating import embed_file, get_file_extension, load_template, make_fenced_code_block

__all__ = [
    "CommandRewriter",
    "EvalArguments",
    "EvaluationContext",
    "Evaluator",
    "Lesson",
    "LessonBuildConfig",
    "LessonRenderer",
    "Marker",
    "MarkerKind",
    "NixEvaluator",
    "RenderedLesson",
    "RewriteRule",
    "SandboxRunner",
    "SandboxSettings",
    "apply_replacement_passes",
    "build_evaluation_map",
    "build_renderer",
    "configure_logging",
    "copy_lessons_to_site",
    "discover_lessons",
    "embed_file",
    "extract",
    "extract_captures",
    "find_markers",
    "get_file_extension",
    "load_lesson",
    "load_lessons",
    "load_template",
    "make_fenced_code_block",
    "output_paths",
    "parse_eval_arguments",
    "render_lessons",
    "run_from_config",
    "sandbox_workspace",
    "substitute_self",
    "write_rendered_lessons",
]
