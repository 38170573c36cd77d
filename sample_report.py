from typing import Any, List

from sample_stats import PrefixBucket, SampleRun

SIZE_UNITS = ["B", "kB", "MB", "GB", "TB"]


def format_size(num: float) -> str:
    num = float(num)
    if num == 0:
        return "0 B"
    for unit in SIZE_UNITS[:-1]:
        if abs(num) < 1024.0:
            return f"{num:.2f} {unit}"
        num /= 1024.0
    return f"{num:.2f} {SIZE_UNITS[-1]}"


def sampled_percentage(sample_size: int, total_keys: int) -> float:
    if total_keys <= 0:
        return 0.0
    return min(sample_size * 100.0 / total_keys, 100.0)


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _prefix_line(prefix: str, bucket: PrefixBucket) -> str:
    return (
        f"    [{prefix}] count: {bucket.count}, avg size: {bucket.avg_size:.2f}B, "
        f"avg ttl: {bucket.avg_ttl:.0f}s"
    )


def render_report(run: SampleRun) -> List[str]:
    info = run.server_info
    lines = [
        f"Redis Server found: {info.get('redis_version', 'unknown')}",
        f"      uptime in seconds: {info.get('uptime_in_seconds', 'unknown')}",
        f"      connected clients: {info.get('connected_clients', 'unknown')}",
        f"      used memory: {info.get('used_memory_human', 'unknown')}",
        f"      used memory RSS: {info.get('used_memory_rss_human', 'unknown')}",
        f"      total number of keys: {run.total_keys} "
        f"({sampled_percentage(run.sample_size, run.total_keys):.2f}% sampled)",
        f"      total commands processed: {_as_int(info.get('total_commands_processed')):,}",
        f"      total net input: {format_size(_as_int(info.get('total_net_input_bytes')))}",
        f"      total net output: {format_size(_as_int(info.get('total_net_output_bytes')))}",
        f"Sample size (via RANDOMKEY): {run.sample_size}",
        f" sampled {run.sampled} unique keys (drew {run.draws}, duplicates {run.duplicates}, "
        f"empty {run.empty_draws}, failed {run.failed})",
    ]

    types = sorted(run.types.items(), key=lambda kv: (-kv[1], kv[0]))
    lines.append(" sampled types: " + (", ".join(f"{t}: {c}" for t, c in types) or "none"))

    lines.append(
        " sampled top level prefixes (0 TTL means indefinite; "
        "average TTL undercounts keys without expiry):"
    )
    lines.extend(_prefix_line(p, b) for p, b in run.buckets(level=1, min_count=2))

    lines.append(
        " sampled second level prefixes with more than one value "
        "(already included in first level):"
    )
    lines.extend(_prefix_line(p, b) for p, b in run.buckets(level=2, min_count=2))
    return lines


def print_report(run: SampleRun):
    for line in render_report(run):
        print(line)
