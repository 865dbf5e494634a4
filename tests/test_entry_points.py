"""
Tests for the root module that exposes every stage to ``--entry-point``.
"""

import importlib

import pytest

import main

STAGES = [
    "drive_scanner",
    "doc_processor",
    "text_vision_processor",
    "text_firestore_writer",
    "file_classifier",
]


@pytest.mark.parametrize("stage", STAGES)
def test_root_module_exposes_stage_function(stage):
    stage_main = importlib.import_module(f"{stage}.main")

    assert callable(getattr(main, stage))
    assert getattr(main, stage) is getattr(stage_main, stage)


def test_root_module_exports_only_the_stages():
    assert sorted(main.__all__) == sorted(STAGES)
