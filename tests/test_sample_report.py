import pytest

from sample_report import format_size, print_report, render_report, sampled_percentage
from sample_stats import Aggregator, Observation, SampleRun


@pytest.mark.parametrize(
    "size, expected",
    [
        (0, "0 B"),
        (512, "512.00 B"),
        (2048, "2.00 kB"),
        (1536, "1.50 kB"),
        (3 * 1024**2, "3.00 MB"),
        (5 * 1024**3, "5.00 GB"),
        (2 * 1024**4, "2.00 TB"),
        (4096 * 1024**4, "4096.00 TB"),
    ],
)
def test_format_size(size, expected):
    assert format_size(size) == expected


def test_sampled_percentage_is_capped():
    assert sampled_percentage(10000, 250) == 100.0
    assert sampled_percentage(50, 200) == 25.0
    assert sampled_percentage(10, 0) == 0.0


def test_report_for_scenario(scenario_keys, server_info):
    run = SampleRun(sample_size=4, total_keys=4, server_info=server_info)
    agg = Aggregator(run)
    for key, (key_type, ttl, size) in scenario_keys.items():
        agg.record(Observation(key=key, key_type=key_type, ttl=ttl, size=size))
    run.draws = 4
    run.completed = 4

    lines = render_report(run)

    assert lines[0] == "Redis Server found: 7.2.4"
    assert "      total number of keys: 4 (100.00% sampled)" in lines
    assert "      total commands processed: 1,234,567" in lines
    assert "      total net input: 2.00 kB" in lines
    assert "      total net output: 3.00 MB" in lines
    assert "Sample size (via RANDOMKEY): 4" in lines
    assert " sampled types: hash: 3, string: 1" in lines
    assert "    [user] count: 3, avg size: 200.00B, avg ttl: 60s" in lines
    assert "    [user~1001] count: 2, avg size: 150.00B, avg ttl: 30s" in lines
    assert not any("[cache]" in line for line in lines)
    assert not any("[user~2002]" in line for line in lines)

    top = lines.index("    [user] count: 3, avg size: 200.00B, avg ttl: 60s")
    second = lines.index("    [user~1001] count: 2, avg size: 150.00B, avg ttl: 30s")
    assert top < second


def test_report_for_empty_run():
    lines = render_report(SampleRun(sample_size=0))

    assert "Redis Server found: unknown" in lines
    assert "      total number of keys: 0 (0.00% sampled)" in lines
    assert "      total net input: 0 B" in lines
    assert " sampled types: none" in lines
    assert not any(line.startswith("    [") for line in lines)


def test_print_report(capsys):
    print_report(SampleRun(sample_size=0))
    out = capsys.readouterr().out
    assert "Sample size (via RANDOMKEY): 0" in out
