import pytest

from placement_graph import Node
from profile_lookup import DurationLookup, ProfileTable, load_profile_csv


def _node(name, origin=None, attr_key="_tge_origin"):
  attr = {attr_key: origin} if origin is not None else {}
  return Node(name=name, device="/gpu:0", attr=attr)


def test_unreplicated_node_gets_raw_duration():
  lookup = DurationLookup(ProfileTable({"matmul": 100}), replication_factor=4)
  assert lookup.duration(_node("matmul", "matmul"), 0) == 100


def test_replica_duration_is_split_by_replication_factor():
  lookup = DurationLookup(ProfileTable({"matmul": 100}), replication_factor=4)
  assert lookup.duration(_node("replica_1/matmul", "matmul"), 0) == 25


def test_replica_split_truncates():
  lookup = DurationLookup(ProfileTable({"matmul": 10}), replication_factor=3)
  assert lookup.duration(_node("replica_0/matmul", "matmul"), 1) == 3


def test_missing_origin_attribute_is_unknown():
  lookup = DurationLookup(ProfileTable({"matmul": 100}), replication_factor=2)
  assert lookup.duration(_node("matmul"), 0) is None


def test_origin_absent_from_profile_is_unknown():
  lookup = DurationLookup(ProfileTable({"matmul": 100}), replication_factor=2)
  assert lookup.duration(_node("relu", "relu"), 0) is None


def test_bytes_origin_and_custom_attr_key():
  lookup = DurationLookup(ProfileTable({"conv": 8}), replication_factor=2, origin_attr="origin")
  assert lookup.duration(_node("conv", b"conv", attr_key="origin"), 0) == 8
  assert lookup.duration(_node("conv/rep1", b"conv", attr_key="origin"), 0) == 4


def test_device_does_not_change_duration():
  lookup = DurationLookup(ProfileTable({"op": 12}), replication_factor=2)
  node = _node("op", "op")
  assert lookup.duration(node, 0) == lookup.duration(node, 5)


@pytest.mark.parametrize("factor", [0, -1])
def test_replication_factor_must_be_positive(factor):
  with pytest.raises(ValueError):
    DurationLookup(ProfileTable(), replication_factor=factor)


def test_replication_factor_must_be_int():
  with pytest.raises(TypeError):
    DurationLookup(ProfileTable(), replication_factor=2.5)


def test_profile_table_is_read_only_mapping():
  table = ProfileTable({"a": 1, "b": "2"})
  assert dict(table) == {"a": 1, "b": 2}
  assert len(table) == 2
  with pytest.raises(TypeError):
    table["a"] = 5


def test_profile_table_rejects_negative_and_garbage():
  with pytest.raises(ValueError, match="a"):
    ProfileTable({"a": -1})
  with pytest.raises(ValueError, match="b"):
    ProfileTable({"b": "slow"})


@pytest.mark.parametrize("value", [2.9, True, False, float("nan")])
def test_profile_table_rejects_fractional_and_bool(value):
  with pytest.raises(ValueError, match="must be an integer duration"):
    ProfileTable({"a": value})


def test_profile_table_accepts_integral_floats():
  assert ProfileTable({"a": 4.0})["a"] == 4


def test_merged_overrides_without_touching_original():
  base = ProfileTable({"a": 1, "b": 2})
  merged = base.merged({"b": 20, "c": 30})
  assert dict(merged) == {"a": 1, "b": 20, "c": 30}
  assert dict(base) == {"a": 1, "b": 2}


def test_load_profile_csv(tmp_path):
  path = tmp_path / "profile.csv"
  path.write_text("# op timings\nname,duration\nmatmul,120\nrelu,3\n")
  table = load_profile_csv(path)
  assert dict(table) == {"matmul": 120, "relu": 3}


def test_load_profile_csv_custom_columns(tmp_path):
  path = tmp_path / "profile.csv"
  path.write_text("op,us,device\nmatmul,120,/gpu:0\n")
  table = load_profile_csv(path, name_column="op", duration_column="us")
  assert table["matmul"] == 120


def test_load_profile_csv_missing_column(tmp_path):
  path = tmp_path / "profile.csv"
  path.write_text("name,time\nmatmul,120\n")
  with pytest.raises(ValueError, match="duration"):
    load_profile_csv(path)


def test_load_profile_csv_non_numeric(tmp_path):
  path = tmp_path / "profile.csv"
  path.write_text("name,duration\nmatmul,fast\nrelu,3\n")
  with pytest.raises(ValueError, match="matmul"):
    load_profile_csv(path)


def test_load_profile_csv_rejects_fractional(tmp_path):
  path = tmp_path / "profile.csv"
  path.write_text("name,duration\nmatmul,120\nrelu,2.5\n")
  with pytest.raises(ValueError, match="relu"):
    load_profile_csv(path)
