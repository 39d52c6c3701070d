import os
import sys

import pytest

# 添加 src 到路径
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tabspider.core.log_util import LogFactory


@pytest.fixture(autouse=True, scope="session")
def _log_dir(tmp_path_factory):
    """日志文件写到临时目录，不污染工作区"""
    LogFactory.set_log_dir(str(tmp_path_factory.mktemp("logs")))
