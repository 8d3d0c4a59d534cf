"""Test data generator for comtradekit.

Each session fixture writes a small synthetic recording (configuration plus
data, or a combined container) and returns a metadata dict with the raw
values used, so tests can check scaling and timing against them.
"""

import numpy as np
import pytest


# -- Helpers -------------------------------------------------------------------

def pack_status_words(bits):
    """Pack an ``(n_samples, n_status)`` 0/1 array into 16-bit words.

    Bit ``i`` of word ``g`` holds channel ``16 * g + i``.
    """
    bits = np.asarray(bits, dtype=np.uint16)
    n_samples, n_status = bits.shape
    n_words = -(-n_status // 16)
    words = np.zeros((n_samples, n_words), dtype=np.uint16)
    for ch in range(n_status):
        words[:, ch // 16] |= (bits[:, ch] << np.uint16(ch % 16)).astype(np.uint16)
    return words


def build_binary_dat(sample_numbers, timestamps, raw_analog, status_bits,
                     analog_dtype):
    """Serialise sample records as little-endian binary."""
    n = len(sample_numbers)
    raw_analog = np.asarray(raw_analog)
    status_bits = np.asarray(status_bits)
    words = pack_status_words(status_bits) if status_bits.shape[1] else None

    fields = [("sample", "<u4"), ("timestamp", "<u4")]
    if raw_analog.shape[1]:
        fields.append(("analog", analog_dtype, (raw_analog.shape[1],)))
    if words is not None:
        fields.append(("status", "<u2", (words.shape[1],)))
    records = np.zeros(n, dtype=np.dtype(fields))
    records["sample"] = sample_numbers
    records["timestamp"] = timestamps
    if raw_analog.shape[1]:
        records["analog"] = raw_analog
    if words is not None:
        records["status"] = words
    return records.tobytes()


def build_ascii_dat(sample_numbers, timestamps, raw_analog, status_bits):
    """Serialise sample rows as comma-separated text.

    A ``None`` timestamp is written as an empty field.
    """
    lines = []
    for k, n in enumerate(sample_numbers):
        ts = "" if timestamps[k] is None else str(timestamps[k])
        values = [str(n), ts]
        values += [repr(float(v)) if isinstance(v, float) else str(v)
                   for v in raw_analog[k]]
        values += [str(int(b)) for b in status_bits[k]]
        lines.append(",".join(values))
    return "\n".join(lines) + "\n"


# -- 1999 Binary16 -------------------------------------------------------------

BINARY16_MULTIPLIERS = [0.000361849, 0.000365758, 0.000371569, 0.000016493]
BINARY16_N_STATUS = 18


def cfg_1999_binary16(data_format="BINARY"):
    lines = [
        "station,equipment,1999",
        f"{4 + BINARY16_N_STATUS},4A,{BINARY16_N_STATUS}D",
        "1,VA,A,obj,kV,0.000361849,0,0,-32767,32767,120,1,P",
        "2,VB,B,obj,kV,0.000365758,0,0,-32767,32767,120,1,P",
        "3,VC,C,obj,kV,0.000371569,0,0,-32767,32767,120,1,P",
        "4,VN,N,obj,kV,0.000016493,0,0,-32767,32767,60,1,P",
    ]
    for i in range(1, BINARY16_N_STATUS + 1):
        normal = 1 if i == 2 else 0
        lines.append(f"{i},ST_{i},,,{normal}")
    lines += [
        "60",
        "1",
        "15360,5",
        "07/01/2017,15:35:41.958268",
        "07/01/2017,15:35:41.958333",
        data_format,
        "1",
    ]
    return "\r\n".join(lines) + "\r\n"


@pytest.fixture(scope="session")
def rec_1999_binary16(tmp_path_factory):
    """1999 revision, Binary16 data: 4 analog and 18 status channels sampled
    at 15360 Hz for 5 samples.  Status needs two words, the second of which
    carries 14 padding bits.
    """
    tmp = tmp_path_factory.mktemp("bin16")
    n = 5
    sample_numbers = np.arange(1, n + 1)
    timestamps = np.round(np.arange(n) * 1e6 / 15360).astype(np.uint32)
    raw_analog = np.array([
        [-24979, -3905, 27726, 12313],
        [-24571, -4495, 27946, 11930],
        [-24053, -5090, 28084, 11581],
        [-23425, -5686, 28119, 11391],
        [-22790, -6248, 28109, 11072],
    ], dtype=np.int16)
    rng = np.random.default_rng(7)
    status_bits = rng.integers(0, 2, size=(n, BINARY16_N_STATUS))
    status_bits[:, 17] = 1

    cfg_path = tmp / "sample_1999_bin.cfg"
    dat_path = tmp / "sample_1999_bin.dat"
    cfg_path.write_bytes(cfg_1999_binary16().encode("ascii"))
    data = build_binary_dat(sample_numbers, timestamps, raw_analog,
                            status_bits, "<i2")
    dat_path.write_bytes(data)

    return {
        "cfg_path": cfg_path,
        "dat_path": dat_path,
        "cfg_text": cfg_1999_binary16(),
        "dat_bytes": data,
        "sample_numbers": sample_numbers,
        "timestamps": timestamps,
        "raw_analog": raw_analog,
        "status_bits": status_bits,
        "multipliers": BINARY16_MULTIPLIERS,
        "rate": 15360.0,
    }


# -- 2013 ASCII ----------------------------------------------------------------

CFG_2013_ASCII = """\
SMARTSTATION,IED123,2013
4,2A,2D
1,IA,A,Line1,A,0.1138916015625,0.05694580078125,0,-32768,32767,933,1,S
2,VA,A,Line1,kV,0.01,0,0,-32768,32767,1,1,P
1,TRIP,A,Line1,0
2,CB_OPEN,,,1
50
1
1200,40
25/12/2021,10:00:00.000000
25/12/2021,10:00:00.020000000
ASCII
1
-5h30,-5h30
B,3
"""


@pytest.fixture(scope="session")
def rec_2013_ascii(tmp_path_factory):
    """2013 revision, ASCII data: 2 analog and 2 status channels, 40 samples
    at 1200 Hz, with UTC offsets and time quality codes.
    """
    tmp = tmp_path_factory.mktemp("ascii2013")
    n = 40
    sample_numbers = list(range(1, n + 1))
    timestamps = [int(round((k - 1) * 1e6 / 1200)) for k in sample_numbers]
    t = np.arange(n) / 1200.0
    raw_ia = np.round(1000 * np.sin(2 * np.pi * 50 * t)).astype(int)
    raw_va = np.round(500 * np.cos(2 * np.pi * 50 * t)).astype(int)
    raw_analog = np.column_stack([raw_ia, raw_va])
    status_bits = np.zeros((n, 2), dtype=int)
    status_bits[10:, 0] = 1
    status_bits[:25, 1] = 1
    dat_text = build_ascii_dat(sample_numbers, timestamps, raw_analog,
                               status_bits)

    cfg_path = tmp / "rec2013.cfg"
    dat_path = tmp / "rec2013.dat"
    hdr_path = tmp / "rec2013.hdr"
    cfg_path.write_text(CFG_2013_ASCII)
    dat_path.write_text(dat_text)
    hdr_path.write_text("Fault on Line1\nPhase A to ground\n")

    return {
        "cfg_path": cfg_path,
        "dat_path": dat_path,
        "hdr_path": hdr_path,
        "cfg_text": CFG_2013_ASCII,
        "dat_text": dat_text,
        "sample_numbers": np.array(sample_numbers),
        "raw_analog": raw_analog,
        "status_bits": status_bits,
        "rate": 1200.0,
    }


@pytest.fixture(scope="session")
def rec_2013_cff(tmp_path_factory, rec_2013_ascii):
    """The 2013 ASCII recording packed into a combined file."""
    tmp = tmp_path_factory.mktemp("cff")
    dat_text = rec_2013_ascii["dat_text"]
    text = (
        "--- file type: CFG ---\n"
        + CFG_2013_ASCII
        + f"--- file type: DAT ASCII: {len(dat_text)} ---\n"
        + dat_text
        + "--- file type: HDR ---\n"
        + "Fault on Line1\n"
        + "--- file type: INF ---\n"
        + "[Public Record]\n"
    )
    path = tmp / "rec2013.cff"
    path.write_text(text)
    return {"path": path, "text": text, **rec_2013_ascii}


# -- 1991 ASCII ----------------------------------------------------------------

CFG_1991_ASCII = """\
OLD STATION,REL1
3,2A,1D
1,IA,,,A,0.5,0,0,-1000,1000,1,1,p
2,IB,,,A,0.5,1,0,-1000,1000,1,1,p
1,TRIP,,,0
60
2
1000,4
2000,10
12/31/1999,23:59:59.500000
12/31/1999,23:59:59.502
ASCII
"""


@pytest.fixture(scope="session")
def rec_1991_ascii(tmp_path_factory):
    """1991 revision (no revision token), two rate segments, 10 samples."""
    tmp = tmp_path_factory.mktemp("ascii1991")
    n = 10
    sample_numbers = list(range(1, n + 1))
    timestamps = [None] * n
    raw_analog = np.column_stack([np.arange(n) * 10, -np.arange(n) * 4])
    status_bits = (np.arange(n) >= 5).astype(int).reshape(n, 1)
    dat_text = build_ascii_dat(sample_numbers, timestamps, raw_analog,
                               status_bits)

    cfg_path = tmp / "OLD.CFG"
    dat_path = tmp / "OLD.DAT"
    cfg_path.write_text(CFG_1991_ASCII)
    dat_path.write_text(dat_text)
    return {
        "cfg_path": cfg_path,
        "dat_path": dat_path,
        "cfg_text": CFG_1991_ASCII,
        "dat_text": dat_text,
        "sample_numbers": np.array(sample_numbers),
        "raw_analog": raw_analog,
        "status_bits": status_bits,
    }


# -- Timestamp-critical --------------------------------------------------------

CFG_CRITICAL_ASCII = """\
crit,dev,1999
2,1A,1D
1,I,,,A,1,0,0,-100,100,1,1,P
1,S,,,0
50
0
6
01/02/2020,00:00:00.000000
01/02/2020,00:00:00.000100
ASCII
2.0
"""


@pytest.fixture(scope="session")
def rec_critical_ascii():
    """No sampling rates: sample times come from stored microsecond
    timestamps scaled by a multiplication factor of 2.
    """
    stored = [0, 100, 250, 400, 700, 1000]
    dat_text = build_ascii_dat(
        list(range(1, 7)), stored,
        [[v] for v in (5, 6, 7, 8, 9, 10)],
        [[0], [1], [1], [0], [0], [1]],
    )
    return {
        "cfg_text": CFG_CRITICAL_ASCII,
        "dat_text": dat_text,
        "stored": np.array(stored),
        "multiplier": 2.0,
    }


def cfg_critical_binary(data_format):
    return (
        "crit32,dev,2013\n"
        "3,2A,1D\n"
        "1,I1,,,A,0.5,0,0,-100,100,1,1,P\n"
        "2,I2,,,A,2,-1,0,-100,100,1,1,S\n"
        "1,S1,,,1\n"
        "60\n"
        "0\n"
        "4\n"
        "01/02/2020,00:00:00.000000000\n"
        "01/02/2020,00:00:00.000000100\n"
        f"{data_format}\n"
        "1.5\n"
        "x,X\n"
        "0,0\n"
    )


@pytest.fixture(scope="session")
def rec_critical_binary32():
    """2013 Binary32 recording without sampling rates, nanosecond
    timestamps, and an unknown time offset.
    """
    stored = np.array([0, 1000, 2000, 3500], dtype=np.uint32)
    raw = np.array([[100000, -7], [-100000, 0], [70000, 3], [1, 2]],
                   dtype=np.int32)
    bits = np.array([[1], [0], [1], [1]])
    data = build_binary_dat(np.arange(1, 5), stored, raw, bits, "<i4")
    return {
        "cfg_text": cfg_critical_binary("binary32"),
        "dat_bytes": data,
        "stored": stored,
        "raw_analog": raw,
        "status_bits": bits,
        "multiplier": 1.5,
    }


@pytest.fixture(scope="session")
def rec_critical_float32():
    """Same layout as ``rec_critical_binary32`` with float32 samples."""
    stored = np.array([10, 20, 30], dtype=np.uint32)
    raw = np.array([[0.25, -1.5], [3.75, 2.0], [-8.5, 0.125]],
                   dtype=np.float32)
    bits = np.array([[0], [1], [0]])
    data = build_binary_dat(np.arange(1, 4), stored, raw, bits, "<f4")
    return {
        "cfg_text": cfg_critical_binary("FLOAT32"),
        "dat_bytes": data,
        "stored": stored,
        "raw_analog": raw,
        "status_bits": bits,
        "multiplier": 1.5,
    }
