import argparse, json, logging, sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from repair_directory.core.search import build_zip_index  # noqa: E402

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
logger = logging.getLogger("build_zip_index")

parser = argparse.ArgumentParser(description="Build the ZIP coordinate lookup from an OpenDataSoft zc-point export")
parser.add_argument("source", help="georef-united-states-of-america-zc-point.json")
parser.add_argument("--output", default="data/zip_coordinates.json")
args = parser.parse_args()

with open(args.source, "r", encoding="utf-8") as fh:
    records = json.load(fh)

index = build_zip_index(records)
Path(args.output).parent.mkdir(parents=True, exist_ok=True)
with open(args.output, "w", encoding="utf-8") as fh:
    json.dump(index, fh, indent=2, sort_keys=True)

logger.info("Wrote %d ZIP codes to %s (%d source records)", len(index), args.output, len(records))
