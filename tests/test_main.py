import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pulse import main as cli
from pulse.pipeline.pulse_pipeline import PulseResponse
from pulse.utils.settings import ConfigError, PulseConfig


def test_parser_requires_exactly_one_mode():
    parser = cli.build_parser()
    with pytest.raises(SystemExit):
        parser.parse_args([])
    with pytest.raises(SystemExit):
        parser.parse_args(["--trending", "--health"])

    args = parser.parse_args(["--discover", "quantum", "--category", "technology", "--limit", "5"])
    assert args.discover == "quantum"
    assert args.category == "technology"
    assert args.limit == 5


@pytest.fixture
def fake_pipeline():
    pipeline = MagicMock()
    pipeline.trending = AsyncMock(return_value=PulseResponse(data=[]))
    pipeline.summarize_article = AsyncMock(return_value=PulseResponse(data={"context": None, "summary": None}))
    pipeline.feeds = AsyncMock(return_value=PulseResponse(error={"type": "NoResults", "message": "none"}))
    pipeline.close = AsyncMock()
    with patch.object(cli, "load_dotenv"), \
            patch.object(cli, "setup_logging"), \
            patch.object(cli, "load_config", return_value=PulseConfig()), \
            patch.object(cli, "PulsePipeline", return_value=pipeline):
        yield pipeline


@pytest.mark.asyncio
async def test_main_prints_json_and_closes(fake_pipeline, capsys):
    assert await cli.main(["--trending", "--placeholders"]) == 0

    fake_pipeline.trending.assert_awaited_once_with(placeholders=True)
    fake_pipeline.close.assert_awaited_once()
    assert json.loads(capsys.readouterr().out)["ok"] is True


@pytest.mark.asyncio
async def test_main_context_builds_article(fake_pipeline):
    await cli.main(["--context", "Volcano erupts", "--description", "Flights grounded", "--url", "https://n.test/v"])

    fake_pipeline.summarize_article.assert_awaited_once_with({
        "title": "Volcano erupts", "description": "Flights grounded", "url": "https://n.test/v",
    })


@pytest.mark.asyncio
async def test_main_error_response_exits_nonzero(fake_pipeline, capsys):
    assert await cli.main(["--feeds", "news"]) == 1
    assert json.loads(capsys.readouterr().out)["error"]["type"] == "NoResults"


@pytest.mark.asyncio
async def test_main_config_error(capsys):
    with patch.object(cli, "load_dotenv"), patch.object(cli, "load_config", side_effect=ConfigError("bad")):
        assert await cli.main(["--health"]) == 2
    assert "Configuration error" in capsys.readouterr().err
