import importlib
import importlib.util
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]


def load_script_module(module_name: str, relative_path: str):
    spec = importlib.util.spec_from_file_location(module_name, ROOT / relative_path)
    module = importlib.util.module_from_spec(spec)
    assert spec and spec.loader
    spec.loader.exec_module(module)
    return module


@pytest.mark.smoke
def test_core_modules_import():
    modules = [
        "nmiSVM",
        "nmiSVM.cli",
        "nmiSVM.pipeline",
        "nmiSVM.spectrum_core",
        "nmiSVM.spectrum_core.kernel",
        "nmiSVM.spectrum_core.model",
    ]
    for module_name in modules:
        importlib.import_module(module_name)

    load_script_module("script_train_and_predict", "scripts/train_and_predict.py")
    load_script_module("script_train_spectrum_svm", "scripts/train_spectrum_svm.py")
    load_script_module("script_predict_spectrum_svm", "scripts/predict_spectrum_svm.py")


@pytest.mark.smoke
def test_public_api_is_exported():
    import nmiSVM.spectrum_core as spectrum_core

    for name in spectrum_core.__all__:
        assert hasattr(spectrum_core, name), name
