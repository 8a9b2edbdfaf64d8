import pytest

from tensorgraph import CpuRuntime, Graph, Tensor
from tensorgraph.errors import InvalidGraphState, ShapeMismatch
from tensorgraph.ir import MatMul, OpType, Transpose, Unary, float32
from tensorgraph.ir.dtypes import MAX_ITEMSIZE, DType, int8


class OtherRuntime:
	name = "OTHER"

	def allocate(self, nbytes):  # pragma: no cover
		raise NotImplementedError

	def deallocate(self, buffer):  # pragma: no cover
		raise NotImplementedError


def test_matmul_shape_inference() -> None:
	g = Graph(name="shape")
	a = g.add_tensor((128, 64))
	b = g.add_tensor((64, 32))
	c = g.matmul(a, b)
	assert c.shape == (128, 32)
	assert len(g.ops) == 1

	mm = g.ops[0]
	assert isinstance(mm, MatMul)
	assert c.source is mm
	assert a.targets == [mm]
	assert b.targets == [mm]


def test_elementwise_broadcast_and_unary() -> None:
	g = Graph(name="elemwise")
	x = g.add_tensor((4, 1))
	y = g.add_tensor((3,))
	z = g.add(x, y)
	r = g.relu(z)
	assert z.shape == (4, 3)
	assert r.shape == (4, 3)
	assert [op.kind for op in g.ops] == [OpType.ADD, OpType.RELU]


def test_transpose_default_reverses_axes() -> None:
	g = Graph()
	x = g.add_tensor((2, 3, 4))
	assert g.transpose(x).shape == (4, 3, 2)
	assert g.transpose(x, (0, 2, 1)).shape == (2, 4, 3)


def test_failed_build_leaves_graph_untouched() -> None:
	g = Graph()
	a = g.add_tensor((3, 4))
	b = g.add_tensor((5, 6))
	with pytest.raises(ShapeMismatch):
		g.matmul(a, b)
	with pytest.raises(ShapeMismatch):
		g.transpose(a, (0, 0))
	assert g.ops == []
	assert len(g.tensors) == 2
	assert a.targets == []


def test_cannot_mix_tensors_from_different_graphs() -> None:
	g1 = Graph(name="g1")
	g2 = Graph(name="g2")

	a = g1.add_tensor((32, 32))
	b = g2.add_tensor((32, 32))

	with pytest.raises(InvalidGraphState):
		g1.matmul(a, b)
	assert len(g1.tensors) == 1


def test_add_existing_tensor_checks_runtime() -> None:
	g = Graph()
	foreign = Tensor(shape=(2, 2), dtype=float32, runtime=OtherRuntime())
	with pytest.raises(InvalidGraphState, match="runtime mismatch"):
		g.add_tensor(foreign)

	same = Tensor(shape=(2, 2), dtype=float32, runtime=CpuRuntime())
	assert g.add_tensor(same) is same
	with pytest.raises(InvalidGraphState):
		g.add_tensor(same)


def test_guids_and_fuids() -> None:
	g = Graph()
	x = g.add_tensor((2, 2))
	y = g.add_tensor((2, 2))
	assert x.guid != y.guid
	assert x.fuid != y.fuid

	c = x.clone()
	assert c.fuid == x.fuid
	assert c.guid != x.guid
	assert c.source is None and c.targets == []

	x.set_shape((4, 1))
	assert x.shape == (4, 1)
	assert g.get_tensor(x.fuid) is x


def test_tensor_size_and_nbytes() -> None:
	g = Graph()
	assert g.add_tensor((2, 3)).nbytes == 24
	assert g.add_tensor((5,), int8).nbytes == 5
	assert g.add_tensor(()).size == 1
	assert MAX_ITEMSIZE == 8
	assert DType.from_name("float32") is float32


def test_adjacency_is_derived_from_tensor_links() -> None:
	g = Graph()
	t0 = g.add_tensor((2, 2))
	t1 = g.add_tensor((2, 2))
	t2 = g.add_tensor((2, 2))

	# Add the consumer first, then its producer.
	second = g.add_operator(Unary(inputs=[t1], outputs=[t2], op_type=OpType.RELU))
	first = g.add_operator(Unary(inputs=[t0], outputs=[t1], op_type=OpType.TANH))

	assert first.successors == [second]
	assert second.predecessors == [first]
	assert t1.source is first
	assert t1.targets == [second]
	assert g.check_valid()


def test_graph_dump() -> None:
	g = Graph()
	x = g.add_tensor((3, 4))
	y = g.transpose(x, (1, 0))
	g.relu(y)
	t, r = g.ops

	text = str(g)
	assert text.startswith("Graph Tensors:")
	assert "Graph operators:" in text
	assert f"OP {t.guid}, pred [], succ [{r.guid}]" in text
	assert f"OP {r.guid}, pred [{t.guid}], succ []" in text
	assert "permute=[1, 0]" in text
	assert "Transpose" in g.summary()


def test_transpose_permute_is_stored_as_tuple() -> None:
	op = Transpose(inputs=[], permute=[1, 0])
	assert op.permute == (1, 0)
	assert op.kind is OpType.TRANSPOSE


def test_lookups_and_bulk_add() -> None:
	g = Graph()
	runtime = g.runtime
	a, b = g.add_tensors([
		Tensor(shape=(2, 3), dtype=float32, runtime=runtime),
		Tensor(shape=(3, 2), dtype=float32, runtime=runtime),
	])
	g.matmul(a, b)
	mm = g.ops[0]
	assert g.get_operator(mm.guid) is mm
	assert g.get_operator(-1) is None
	assert g.get_tensor(b.fuid) is b
	assert g.get_tensor(-1) is None


def test_output_keeps_its_single_producer() -> None:
	g = Graph()
	a = g.add_tensor((2, 2))
	b = g.add_tensor((2, 2))
	out = g.matmul(a, b)
	first = g.ops[0]

	with pytest.raises(InvalidGraphState, match="already has producer"):
		g.add_operator(MatMul(inputs=[b, a], outputs=[out]))
	with pytest.raises(InvalidGraphState, match="already has producer"):
		g.matmul(b, a, output=out)

	assert out.source is first
	assert g.ops == [first]
	assert a.targets == [first]
	assert b.targets == [first]
	assert g.check_valid()


def test_operator_cannot_be_added_twice() -> None:
	g = Graph()
	y = g.relu(g.add_tensor((2, 2)))
	op = g.ops[0]
	with pytest.raises(InvalidGraphState, match="already part of the graph"):
		g.add_operator(op)
	assert g.ops == [op]
	assert y.source is op
