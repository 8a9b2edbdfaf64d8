from .dtypes import MAX_ITEMSIZE, DType, float32
from .graph import Graph
from .op import ElementWise, MatMul, Op, OpType, Transpose, Unary
from .shapes import Shape, infer_broadcast, infer_matmul
from .tensor import Tensor

__all__ = [
	"DType",
	"MAX_ITEMSIZE",
	"float32",
	"Graph",
	"Tensor",
	"Shape",
	"Op",
	"OpType",
	"MatMul",
	"Transpose",
	"ElementWise",
	"Unary",
	"infer_broadcast",
	"infer_matmul",
]
