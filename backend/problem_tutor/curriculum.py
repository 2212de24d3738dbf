from __future__ import annotations
import random
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple


class DifficultyLevel(str, Enum):
	EASY = "EASY"
	MEDIUM = "MEDIUM"
	HARD = "HARD"


CONCEPT_COUNT_BY_DIFFICULTY: Dict[DifficultyLevel, int] = {
	DifficultyLevel.EASY: 1,
	DifficultyLevel.MEDIUM: 2,
	DifficultyLevel.HARD: 3,
}


def concept_count(level: DifficultyLevel) -> int:
	"""Number of primary concepts a problem at ``level`` must combine.

	Only ``DifficultyLevel`` members are accepted; raw strings are parsed at the
	API boundary, so anything else here is a programming error.
	"""
	if not isinstance(level, DifficultyLevel):
		raise ValueError(f"unknown difficulty level: {level!r}")
	return CONCEPT_COUNT_BY_DIFFICULTY[level]


@dataclass(frozen=True)
class TopicGroup:
	primary_concept: str
	details: Tuple[str, ...]


# Primary 5 mathematics syllabus
TOPIC_POOL: Tuple[TopicGroup, ...] = (
	TopicGroup(
		"WHOLE NUMBERS",
		(
			"Numbers up to 10 million",
			"Reading and writing numbers in numerals and in words",
			"Multiplying and dividing by 10, 100, 1000 and their multiples without calculator",
			"Order of operations without calculator",
			"Use of brackets without calculator",
		),
	),
	TopicGroup(
		"FRACTIONS",
		(
			"Dividing a whole number by a whole number with quotient as a fraction",
			"Expressing fractions as decimals",
			"Adding and subtracting mixed numbers",
			"Multiplying a proper/improper fraction and a whole number without calculator",
			"Multiplying a proper fraction and a proper/improper fraction without calculator",
			"Multiplying two improper fractions",
			"Multiplying a mixed number and a whole number",
		),
	),
	TopicGroup(
		"DECIMALS",
		(
			"Multiplying and dividing decimals (up to 3 decimal places) by 10, 100, 1000 and their multiples without calculator",
			"Converting a measurement from a smaller unit to a larger unit in decimal form, and vice versa",
			"Kilometres and metres",
			"Metres and centimetres",
			"Kilograms and grams",
			"Litres and millilitres",
		),
	),
	TopicGroup(
		"PERCENTAGE",
		(
			"Expressing a part of a whole as a percentage",
			"Use of %",
			"Finding a percentage part of a whole",
			"Finding discount, GST and annual interest",
		),
	),
	TopicGroup(
		"RATE",
		(
			"Rate as the amount of a quantity per unit of another quantity",
			"Finding rate, total amount or number of units given the other two quantities",
		),
	),
	TopicGroup(
		"AREA AND VOLUME",
		(
			"Concepts of base and height of a triangle",
			"Area of triangle",
			"Finding the area of composite figures made up of rectangles, squares and triangles",
			"Volume of cube and cuboid",
			"Building solids with unit cubes",
			"Measuring volume in cubic units, cm3/m3, excluding conversion between cm3 and m3",
			"Drawing cubes and cuboids on isometric grid",
			"Volume of a cube/cuboid",
			"Finding the volume of liquid in a rectangular tank",
			"Relationship between l (or ml) and cm3",
		),
	),
	TopicGroup(
		"GEOMETRY",
		(
			"Angles on a straight line",
			"Angles at a point",
			"Vertically opposite angles",
			"Finding unknown angles",
			"Properties of isosceles triangle",
			"Properties of equilateral triangle",
			"Properties of right-angled triangle",
			"Angle sum of a triangle",
			"Finding unknown angles in a triangle without additional construction of lines",
			"Properties of parallelogram",
			"Properties of rhombus",
			"Properties of trapezium",
			"Finding unknown angles in a parallelogram, rhombus or trapezium without additional construction of lines",
		),
	),
)


def sample_topics(pool: Sequence[TopicGroup], count: int, rng: Optional[random.Random] = None) -> List[TopicGroup]:
	"""Draw ``count`` distinct groups from ``pool`` uniformly, without replacement.

	The candidate list is local to the call, so concurrent callers sharing the
	module-level pool never see each other's picks. Asking for more groups than
	the pool holds returns every group once.
	"""
	if count < 0:
		raise ValueError("count must not be negative")
	rng = rng or random.Random()
	candidates = list(range(len(pool)))
	if count >= len(candidates):
		return [pool[i] for i in candidates]
	picked: List[TopicGroup] = []
	for _ in range(count):
		idx = candidates.pop(rng.randrange(len(candidates)))
		picked.append(pool[idx])
	return picked
