# eco_dispatch_api/jsonstore.py
import json
import os


def load_json(path):
    """Load a JSON file, returning Python objects."""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def append_jsonl(path, record):
    """Append one compact JSON record as a line (ensures parent directory)."""
    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
    with open(path, 'a', encoding='utf-8') as f:
        f.write(json.dumps(record, sort_keys=True, separators=(',', ':')) + '\n')
