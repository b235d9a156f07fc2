import json

import pytest

from factories import sample_document


@pytest.fixture
def document():
    return sample_document()


@pytest.fixture
def config_file(tmp_path, document):
    path = tmp_path / ".liveedit.config.json"
    path.write_text(json.dumps(document, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def default_config_file(tmp_path, document):
    default = json.loads(json.dumps(document))
    default["components"]["title"]["props"]["text"] = "Default"
    path = tmp_path / ".liveedit.config.default.json"
    path.write_text(json.dumps(default, indent=2), encoding="utf-8")
    return path
