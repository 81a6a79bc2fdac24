import math

from ..tool_registry import ToolDescriptor


class MathPlugin:
    """Arithmetic tools over floating-point numbers.

    Division follows float semantics: dividing by zero returns +inf or -inf,
    and 0 / 0 returns NaN, rather than raising.
    """

    def add(self, a: float, b: float) -> float:
        """Add two numbers and return the result."""
        return a + b

    def subtract(self, a: float, b: float) -> float:
        """Subtract the second number from the first and return the result."""
        return a - b

    def multiply(self, a: float, b: float) -> float:
        """Multiply two numbers and return the result."""
        return a * b

    def divide(self, a: float, b: float) -> float:
        """Divide the first number by the second and return the result. Returns infinity or negative infinity if dividing by zero."""
        if b == 0:
            # IEEE 754: the sign of the zero divisor carries into the infinity
            if a == 0 or math.isnan(a):
                return math.nan
            return math.copysign(math.inf, a) * math.copysign(1.0, b)
        return a / b

    def hook_provide_tools(self):
        return [
            ToolDescriptor.from_callable(self.add, "Add"),
            ToolDescriptor.from_callable(self.subtract, "Subtract"),
            ToolDescriptor.from_callable(self.multiply, "Multiply"),
            ToolDescriptor.from_callable(self.divide, "Divide"),
        ]
