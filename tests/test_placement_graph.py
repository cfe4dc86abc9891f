import pytest

from placement_graph import GraphIndex, GraphStructureError, Node, Target, normalize_dependency


def _target(entries, devices=("/gpu:0",)):
  nodes = [Node(name=name, device=device, inputs=tuple(inputs)) for name, device, inputs in entries]
  return Target(nodes=nodes, devices=devices)


@pytest.mark.parametrize(
  "reference,expected",
  [
    ("conv1", "conv1"),
    ("^init", "init"),
    ("split:1", "split"),
    ("split:0", "split"),
    ("^scope/op", "scope/op"),
  ],
)
def test_normalize_dependency(reference, expected):
  assert normalize_dependency(reference) == expected


def test_build_links_predecessors_and_successors():
  target = _target([
    ("a", "/gpu:0", []),
    ("b", "/gpu:0", ["a:0"]),
    ("c", "/gpu:0", ["^a"]),
    ("d", "/gpu:0", ["b", "c:2"]),
  ])
  index = GraphIndex.build(target)
  assert index.name_to_index == {"a": 0, "b": 1, "c": 2, "d": 3}
  assert index.predecessors == [[], [0], [0], [1, 2]]
  assert index.successors == [[1, 2], [3], [3], []]
  assert index.sources() == [0]
  assert len(index) == 4


def test_repeated_references_to_one_producer_collapse():
  target = _target([
    ("split", "/gpu:0", []),
    ("concat", "/gpu:0", ["split:0", "split:1", "^split"]),
  ])
  index = GraphIndex.build(target)
  assert index.predecessors[1] == [0]
  assert index.successors[0] == [1]


def test_wide_fan_in_collapses_to_distinct_producers():
  producers = [("p%d" % i, "/gpu:0", []) for i in range(4)]
  refs = ["p%d:%d" % (slot % 4, slot) for slot in range(20000)]
  target = _target(producers + [("sink", "/gpu:0", refs)])
  index = GraphIndex.build(target)
  assert index.predecessors[4] == [0, 1, 2, 3]
  assert all(succ == [4] for succ in index.successors[:4])


def test_devices_resolve_to_indices():
  target = _target(
    [("a", "/gpu:1", []), ("b", "/gpu:0", [])],
    devices=("/gpu:0", "/gpu:1"),
  )
  index = GraphIndex.build(target)
  assert index.device_of == [1, 0]


def test_unknown_dependency_is_fatal():
  target = _target([("a", "/gpu:0", ["ghost:0"])])
  with pytest.raises(GraphStructureError, match="ghost"):
    GraphIndex.build(target)


def test_unknown_device_is_fatal():
  target = _target([("a", "/gpu:7", [])])
  with pytest.raises(GraphStructureError, match="/gpu:7"):
    GraphIndex.build(target)


def test_duplicate_names_are_fatal():
  target = _target([("a", "/gpu:0", []), ("a", "/gpu:0", [])])
  with pytest.raises(GraphStructureError, match="duplicate"):
    GraphIndex.build(target)


def test_build_does_not_mutate_target():
  target = _target([("a", "/gpu:0", []), ("b", "/gpu:0", ["^a"])])
  GraphIndex.build(target)
  assert target.nodes[1].inputs == ("^a",)


def test_with_placement_returns_moved_copy():
  target = _target([("a", "/gpu:0", []), ("b", "/gpu:0", ["a"])], devices=("/gpu:0", "/gpu:1"))
  moved = target.with_placement({"b": "/gpu:1"})
  assert [node.device for node in moved.nodes] == ["/gpu:0", "/gpu:1"]
  assert [node.device for node in target.nodes] == ["/gpu:0", "/gpu:0"]
  assert moved.nodes[1].inputs == ("a",)


def test_with_placement_rejects_unknown_nodes():
  target = _target([("a", "/gpu:0", [])])
  with pytest.raises(GraphStructureError, match="zzz"):
    target.with_placement({"zzz": "/gpu:0"})


def test_target_from_dict():
  target = Target.from_dict({
    "devices": ["/cpu:0"],
    "nodes": [
      {"name": "x", "device": "/cpu:0", "attr": {"_tge_origin": "x"}},
      {"name": "y", "device": "/cpu:0", "inputs": ["x"]},
    ],
  })
  assert target.devices == ("/cpu:0",)
  assert target.nodes[0].attr == {"_tge_origin": "x"}
  assert target.nodes[1].inputs == ("x",)
  assert target.nodes[1].attr == {}


@pytest.mark.parametrize(
  "payload",
  [
    [],
    {"devices": [], "nodes": []},
    {"devices": ["/gpu:0"], "nodes": {"a": 1}},
    {"devices": ["/gpu:0"], "nodes": [{"name": "a"}]},
    {"devices": ["/gpu:0"], "nodes": [{"name": "a", "device": "/gpu:0", "inputs": "b"}]},
    {"devices": ["/gpu:0"], "nodes": [{"name": "a", "device": "/gpu:0", "inputs": {"b": 1}}]},
    {"devices": ["/gpu:0"], "nodes": [{"name": None, "device": "/gpu:0"}]},
    {"devices": ["/gpu:0"], "nodes": [{"name": 7, "device": "/gpu:0"}]},
    {"devices": ["/gpu:0"], "nodes": [{"name": "a", "device": None}]},
  ],
)
def test_target_from_dict_rejects_malformed(payload):
  with pytest.raises(GraphStructureError):
    Target.from_dict(payload)
