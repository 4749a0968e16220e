from .statistics import MarketStatistics, StatisticsEstimator, TickerFailure
from .allocation import Allocation, AllocationSolver, SolveStatus
from .frontier import FrontierResult, FrontierSweeper
from .tangency import FrontierAnalyzer, TangencyPoint
