from .base import MatchingStrategy
from .exact import ExactMatchStrategy
from .fuzzy import FuzzyModelMatchStrategy
from .specs import SpecificationMatchStrategy
from .extended import BrandTranslationStrategy, CapacityCorrelationStrategy, PriceBandStrategy
