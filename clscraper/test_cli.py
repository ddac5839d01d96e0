from clscraper import cli
from clscraper.config import config


def test_defaults():
    args = cli.parse_args([])
    assert args.regions is None
    assert args.category == config.DEFAULT_CATEGORY
    assert args.limit == 100
    assert not args.browser
    assert not args.paginate

    params = cli.params_from_args(args)
    assert params.regions == [config.DEFAULT_REGION]
    assert params.max_pages == config.MAX_PAGES


def test_search_flags_map_to_params():
    args = cli.parse_args([
        "--query", " road bike ", "--region", "sandiego", "--region", "seattle",
        "--min-price", "50", "--max-price", "400", "--details", "--browser",
        "--max-pages", "3", "--limit", "0",
    ])
    params = cli.params_from_args(args)
    assert params.query == "road bike"
    assert params.regions == ["sandiego", "seattle"]
    assert params.min_price == 50.0
    assert params.max_price == 400.0
    assert params.include_details
    assert params.use_browser
    assert params.max_pages == 3
    assert params.limit == 0


def test_log_flags():
    args = cli.parse_args(["--log-level", "DEBUG", "--no-file-log", "--out", "x.xlsx"])
    assert args.log_level == "DEBUG"
    assert args.no_file_log
    assert args.out == "x.xlsx"


def test_list_categories(capsys):
    assert cli.main(["--list-categories"]) == 0
    out = capsys.readouterr().out
    assert "sss\tfor sale by owner" in out


def test_invalid_region_exits_with_error(tmp_path):
    out = tmp_path / "out.csv"
    code = cli.main(["--region", "Not Valid", "--no-file-log", "--out", str(out)])
    assert code == 2
    assert not out.exists()
