import os

from ae_outliers.utils import latest_run, make_run_dir


def test_latest_run_orders_numeric_suffixes(tmp_path):
    for name in ("run_20261019_101010", "run_20261019_101010_2", "run_20261019_101010_10", "run_20261018_235959_11"):
        (tmp_path / name).mkdir()
    assert os.path.basename(latest_run(str(tmp_path))) == "run_20261019_101010_10"


def test_latest_run_with_free_form_stamps(tmp_path):
    for name in ("run_X", "run_X_2", "run_X_10"):
        (tmp_path / name).mkdir()
    assert os.path.basename(latest_run(str(tmp_path))) == "run_X_10"


def test_make_run_dir_never_reuses_a_folder(tmp_path):
    a = make_run_dir(str(tmp_path))
    b = make_run_dir(str(tmp_path))
    assert a != b
    assert os.path.isdir(a) and os.path.isdir(b)
