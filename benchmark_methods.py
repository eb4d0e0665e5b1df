"""Benchmark pyramid build time and output size per tile format and worker count.

Builds every PNG/JPEG image in ``--images-dir`` with ``PyramidBuilder`` and
writes one CSV row per build.
"""

import argparse
import csv
import time
from pathlib import Path

from zoomstack.preprocess.__main__ import find_image_files
from zoomstack.preprocess.pyramid import PyramidBuilder


def get_dir_size_mb(path: Path) -> float:
    """Get total size of directory in MB."""
    total = sum(f.stat().st_size for f in path.rglob("*") if f.is_file())
    return total / (1024 * 1024)


def benchmark(
    images_dir: Path, output_base: Path, formats: list[str], workers: list[int], runs: int
) -> list[dict]:
    """Build each image once per (format, workers, run) combination."""
    results = []
    output_base.mkdir(parents=True, exist_ok=True)
    images = find_image_files(images_dir)

    for image in images:
        for tile_format in formats:
            for worker_count in workers:
                label = f"{tile_format}_w{worker_count}"
                output_dir = output_base / label
                output_dir.mkdir(parents=True, exist_ok=True)

                for run in range(1, runs + 1):
                    print(f"\n=== {image.name} | {label} | Run {run} ===")
                    builder = PyramidBuilder(tile_format=tile_format, workers=worker_count)

                    start = time.perf_counter()
                    result = builder.build(image, output_dir / f"{image.stem}.dzi", force=True)
                    elapsed = time.perf_counter() - start

                    size_mb = get_dir_size_mb(result.files_dir) if result else 0
                    tiles = result.tile_count if result else 0

                    results.append({
                        "image": image.name,
                        "label": label,
                        "format": tile_format,
                        "workers": worker_count,
                        "run": run,
                        "tiles": tiles,
                        "time_seconds": round(elapsed, 2),
                        "output_size_mb": round(size_mb, 1),
                    })
                    print(f"    Time: {elapsed:.2f}s, Tiles: {tiles}, Size: {size_mb:.1f} MB")

    return results


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--images-dir", default="images")
    parser.add_argument("--output-base", default="benchmark_output")
    parser.add_argument("--formats", nargs="+", default=["jpg", "png"], choices=["jpg", "png"])
    parser.add_argument("--workers", nargs="+", type=int, default=[1, 4])
    parser.add_argument("--runs", type=int, default=2)
    args = parser.parse_args()

    images_dir = Path(args.images_dir)
    output_base = Path(args.output_base)

    all_results = benchmark(images_dir, output_base, args.formats, args.workers, args.runs)

    # Write CSV
    csv_path = output_base / "benchmark_results.csv"
    with open(csv_path, "w", newline="") as f:
        writer = csv.DictWriter(
            f,
            fieldnames=[
                "image", "label", "format", "workers", "run",
                "tiles", "time_seconds", "output_size_mb",
            ],
        )
        writer.writeheader()
        writer.writerows(all_results)

    print(f"\n{'='*50}")
    print(f"Results saved to {csv_path}")


if __name__ == "__main__":
    main()
