import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone

from google.cloud import storage

from sync_parquet.config.platforms import get_available_platforms
from sync_parquet.encoder import utc_now_iso
from sync_parquet.errors import PipelineError
from sync_parquet.pipeline import encode_records
from sync_parquet.schema_info import build_schema_info
from sync_parquet.writer import SCHEMA_FILENAME, Destination, persist, serialize_parquet

logger = logging.getLogger(__name__)


def load_records(path):
    """Read records from a JSON array file or a JSON Lines file."""
    with open(path, encoding='utf-8') as f:
        content = f.read()

    stripped = content.lstrip()
    if stripped.startswith('['):
        records = json.loads(content)
    else:
        records = [json.loads(line) for line in content.splitlines() if line.strip()]

    if not isinstance(records, list):
        raise ValueError(f"{path} does not contain a list of records")
    return records


def write_local(column_set, output_dir, object_type):
    """
    Write the Parquet file and schema.json into a local directory.
    An empty batch writes nothing and returns None.
    """
    if column_set.is_empty:
        logger.info(f"[PERSIST] Empty batch for {object_type}, nothing written")
        return None

    os.makedirs(output_dir, exist_ok=True)
    data_path = os.path.join(output_dir, f"{object_type}.parquet")
    schema_path = os.path.join(output_dir, SCHEMA_FILENAME)

    with open(data_path, 'wb') as f:
        f.write(serialize_parquet(column_set))

    schema_info = build_schema_info(column_set)
    schema_info.file_size_bytes = os.path.getsize(data_path)
    with open(schema_path, 'w', encoding='utf-8') as f:
        f.write(schema_info.to_json(object_type=object_type))

    logger.info(f"[CLI] Wrote {data_path} and {schema_path}")
    return data_path, schema_path


def build_parser():
    parser = argparse.ArgumentParser(
        prog='sync-parquet',
        description='Convert CRM JSON records into dynamic-schema Parquet.')
    parser.add_argument(
        '--input',
        dest='input',
        required=True,
        help='JSON array or JSON Lines file with raw records.')
    parser.add_argument(
        '--platform',
        dest='platform',
        default='default',
        help=f"Platform transform config ({', '.join(get_available_platforms())} or default).")
    parser.add_argument(
        '--object-type',
        dest='object_type',
        required=True,
        help='Object type of the records, e.g. contacts.')
    parser.add_argument(
        '--output-dir',
        dest='output_dir',
        help='Write the Parquet file and schema.json into this local directory.')
    parser.add_argument(
        '--bucket',
        dest='bucket',
        help='Upload to this GCS bucket instead of writing locally.')
    parser.add_argument('--account-id', dest='account_id', help='Account id for the GCS key.')
    parser.add_argument('--connection-id', dest='connection_id', help='Connection id for the GCS key.')
    parser.add_argument('--sync-run-id', dest='sync_run_id', help='Sync run id for the GCS key, current UTC time if omitted.')
    parser.add_argument('--chunk-number', dest='chunk_number', type=int, default=0, help='Chunk number.')
    parser.add_argument('--prefix', dest='prefix', default='', help='Key prefix inside the bucket.')
    parser.add_argument(
        '--preview',
        dest='preview',
        type=int,
        default=0,
        help='Print the first N rows of the encoded table.')
    return parser


def main(argv=None):
    """Entry point for the sync-parquet command."""
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.bucket and not (args.account_id and args.connection_id):
        parser.error('--bucket requires --account-id and --connection-id')
    if not args.bucket and not args.output_dir and not args.preview:
        parser.error('nothing to do: pass --output-dir, --bucket or --preview')

    try:
        records = load_records(args.input)
    except (OSError, ValueError) as e:
        logger.error(f"[CLI] Could not read {args.input}: {e}")
        return 2

    try:
        column_set = encode_records(records, args.platform, synced_at=utc_now_iso())
        logger.info(
            f"[CLI] Encoded {column_set.record_count} records into "
            f"{len(column_set.schema.column_names)} columns"
        )

        if args.preview:
            frame = column_set.table.to_pandas()
            print(frame.head(args.preview).to_string())

        if args.output_dir:
            write_local(column_set, args.output_dir, args.object_type)

        if args.bucket:
            destination = Destination(
                account_id=args.account_id,
                connection_id=args.connection_id,
                object_type=args.object_type,
                sync_run_id=args.sync_run_id or datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%SZ'),
                chunk_number=args.chunk_number,
                prefix=args.prefix,
            )
            bucket = storage.Client().bucket(args.bucket)
            schema_info = persist(column_set, destination, bucket)
            logger.info(f"[CLI] Uploaded {schema_info.record_count} records to gs://{args.bucket}/{destination.data_key}")
    except PipelineError as e:
        logger.error(f"[CLI] {e}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
