"""
QrBites Maintenance - Database optimizer

Runs the database maintenance suite and composes the optimization report:
1. Index creation (IndexManager.create_all)
2. Representative query-shape sampling
3. Per-collection storage statistics
4. TTL index creation
5. Integrity validation (IntegrityValidator)
6. Report artifact with threshold-based recommendations
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pymongo.errors import PyMongoError

from .indexes import IndexManager, IndexResult, IndexStatus
from .integrity import CheckStatus, IntegrityFinding, IntegrityValidator
from .log import get_logger
from .reports import write_report

logger = get_logger(__name__)

LARGE_DOCUMENT_BYTES = 16 * 1024
INDEX_OVERHEAD_RATIO = 0.5
QUERY_SAMPLE_SIZE = 5

STATS_COLLECTIONS = ["users", "restaurants", "menus", "menuitems", "profiles"]

QUERY_SAMPLES: List[Dict[str, Any]] = [
    {
        "name": "Restaurant queries by owner",
        "collection": "restaurants",
        "pipeline": [
            {"$match": {"ownerId": {"$exists": True}}},
            {"$group": {"_id": "$ownerId", "count": {"$sum": 1}}},
            {"$sort": {"count": -1}},
            {"$limit": 10},
        ],
    },
    {
        "name": "Menu items by restaurant popularity",
        "collection": "menuitems",
        "pipeline": [
            {"$lookup": {"from": "menus", "localField": "menuId", "foreignField": "_id", "as": "menu"}},
            {"$unwind": "$menu"},
            {"$group": {"_id": "$menu.restaurantId", "itemCount": {"$sum": 1}}},
            {"$sort": {"itemCount": -1}},
            {"$limit": 10},
        ],
    },
    {
        "name": "User activity patterns",
        "collection": "users",
        "pipeline": [
            {
                "$group": {
                    "_id": {"month": {"$month": "$createdAt"}, "year": {"$year": "$createdAt"}},
                    "registrations": {"$sum": 1},
                }
            },
            {"$sort": {"_id.year": -1, "_id.month": -1}},
            {"$limit": 12},
        ],
    },
]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class OptimizerOptions:
    """Which optimizer steps to run."""
    create_indexes: bool = True
    analyze_queries: bool = True
    optimize_settings: bool = True
    create_ttl: bool = True
    validate_integrity: bool = True
    generate_report: bool = True


@dataclass
class CollectionStats:
    collection: str
    document_count: int
    avg_document_size: float
    index_count: int
    total_index_size: int
    storage_size: int
    timestamp: str = field(default_factory=_now)

    @classmethod
    def from_coll_stats(cls, collection: str, stats: Dict[str, Any]) -> "CollectionStats":
        return cls(
            collection=collection,
            document_count=stats.get("count", 0),
            avg_document_size=stats.get("avgObjSize", 0),
            index_count=stats.get("nindexes", 0),
            total_index_size=stats.get("totalIndexSize", 0),
            storage_size=stats.get("storageSize", 0),
        )

    @property
    def is_large_document(self) -> bool:
        return self.avg_document_size > LARGE_DOCUMENT_BYTES

    @property
    def has_index_overhead(self) -> bool:
        return self.storage_size > 0 and self.total_index_size > self.storage_size * INDEX_OVERHEAD_RATIO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collection": self.collection,
            "documentCount": self.document_count,
            "avgDocumentSize": self.avg_document_size,
            "indexCount": self.index_count,
            "totalIndexSize": self.total_index_size,
            "storageSize": self.storage_size,
            "timestamp": self.timestamp,
        }


@dataclass
class QueryAnalysis:
    name: str
    collection: str
    result_count: int
    results: List[Dict[str, Any]]
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "collection": self.collection,
            "resultCount": self.result_count,
            "results": self.results,
            "timestamp": self.timestamp,
        }


@dataclass
class Recommendation:
    type: str
    collection: str
    message: str
    priority: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "collection": self.collection,
            "message": self.message,
            "priority": self.priority,
        }


@dataclass
class OptimizationReport:
    """Everything one optimizer run produced."""
    timestamp: str = field(default_factory=_now)
    collection_stats: List[CollectionStats] = field(default_factory=list)
    index_results: List[IndexResult] = field(default_factory=list)
    query_analysis: List[QueryAnalysis] = field(default_factory=list)
    integrity_findings: List[IntegrityFinding] = field(default_factory=list)
    recommendations: List[Recommendation] = field(default_factory=list)
    report_path: Optional[Path] = None

    @property
    def summary(self) -> Dict[str, Any]:
        return {
            "totalCollections": len(self.collection_stats),
            "totalIndexes": sum(1 for r in self.index_results if r.status == IndexStatus.CREATED),
            "indexErrors": sum(1 for r in self.index_results if r.status == IndexStatus.ERROR),
            "integrityIssues": sum(f.issue_count for f in self.integrity_findings),
            "integrityErrors": sum(1 for f in self.integrity_findings if f.status == CheckStatus.ERROR),
            "recommendations": len(self.recommendations),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "runType": "database-optimization",
            "collectionStats": [s.to_dict() for s in self.collection_stats],
            "indexResults": [r.to_dict() for r in self.index_results],
            "queryAnalysis": [q.to_dict() for q in self.query_analysis],
            "integrityFindings": [f.to_dict() for f in self.integrity_findings],
            "recommendations": [r.to_dict() for r in self.recommendations],
            "summary": self.summary,
        }


def build_recommendations(collection_stats: List[CollectionStats]) -> List[Recommendation]:
    """Derive recommendations from the fixed size thresholds."""
    recommendations = []
    for stats in collection_stats:
        if stats.is_large_document:
            recommendations.append(Recommendation(
                type="performance",
                collection=stats.collection,
                message=f"Consider breaking down large documents in {stats.collection}",
                priority="medium",
            ))
        if stats.has_index_overhead:
            recommendations.append(Recommendation(
                type="storage",
                collection=stats.collection,
                message=f"High index overhead in {stats.collection} - review unused indexes",
                priority="low",
            ))
    return recommendations


class DatabaseOptimizer:
    """
    Database maintenance suite.

    Usage:
        optimizer = DatabaseOptimizer(db, report_dir="reports")
        report = await optimizer.run(OptimizerOptions(create_indexes=False))
    """

    def __init__(
        self,
        db,
        index_manager: Optional[IndexManager] = None,
        integrity_validator: Optional[IntegrityValidator] = None,
        report_dir: Union[str, Path] = ".",
        profile_slow_queries: bool = False,
    ):
        self.db = db
        self.index_manager = index_manager or IndexManager(db)
        self.integrity_validator = integrity_validator or IntegrityValidator(db)
        self.report_dir = report_dir
        self.profile_slow_queries = profile_slow_queries

    async def analyze_query_performance(self) -> List[QueryAnalysis]:
        """Run the representative aggregation samples, keeping the top results."""
        logger.info("Analyzing query performance...")

        if self.profile_slow_queries:
            try:
                await self.db.command({"profile": 1, "slowms": 100, "sampleRate": 0.5})
                logger.info("  Slow query profiler enabled (>100ms, 50% sample)")
            except PyMongoError as e:
                logger.warning(f"  Could not enable the query profiler: {e}")

        analyses = []
        for sample in QUERY_SAMPLES:
            try:
                results = await self.db[sample["collection"]].aggregate(sample["pipeline"]).to_list(length=None)
            except PyMongoError as e:
                logger.error(f"Analysis failed for {sample['name']}: {e}")
                continue

            analyses.append(QueryAnalysis(
                name=sample["name"],
                collection=sample["collection"],
                result_count=len(results),
                results=results[:QUERY_SAMPLE_SIZE],
            ))
            logger.info(f"  {sample['name']}: {len(results)} results")

        return analyses

    async def collect_collection_stats(self) -> List[CollectionStats]:
        """Gather storage statistics for the core collections."""
        logger.info("Optimizing collection settings...")

        collected = []
        for collection in STATS_COLLECTIONS:
            try:
                raw = await self.db.command("collStats", collection)
            except PyMongoError as e:
                logger.error(f"Failed to get stats for {collection}: {e}")
                continue

            stats = CollectionStats.from_coll_stats(collection, raw)
            collected.append(stats)
            logger.info(f"  {collection}: {stats.document_count} docs, {stats.index_count} indexes")

            if stats.is_large_document:
                logger.warning(f"    Large average document size: {round(stats.avg_document_size / 1024)}KB")
            if stats.has_index_overhead:
                logger.warning(
                    f"    Index overhead is high: {round(stats.total_index_size / stats.storage_size * 100)}%"
                )

        return collected

    def log_summary(self, report: OptimizationReport) -> None:
        summary = report.summary
        logger.info("OPTIMIZATION SUMMARY")
        logger.info("=" * 50)
        logger.info(f"Collections analyzed: {summary['totalCollections']}")
        logger.info(f"Indexes created: {summary['totalIndexes']}")
        logger.info(f"Index errors: {summary['indexErrors']}")
        logger.info(f"Integrity issues: {summary['integrityIssues']}")
        logger.info(f"Recommendations: {summary['recommendations']}")

        if report.recommendations:
            logger.info("RECOMMENDATIONS:")
            for index, rec in enumerate(report.recommendations, start=1):
                logger.info(f"  {index}. [{rec.priority.upper()}] {rec.message}")

    async def run(self, options: Optional[OptimizerOptions] = None) -> OptimizationReport:
        """Run the selected optimizer steps and return the composed report."""
        options = options or OptimizerOptions()
        report = OptimizationReport()

        logger.info("Starting comprehensive database optimization...")

        if options.create_indexes:
            report.index_results.extend(await self.index_manager.create_all())

        if options.analyze_queries:
            report.query_analysis = await self.analyze_query_performance()

        if options.optimize_settings:
            report.collection_stats = await self.collect_collection_stats()

        if options.create_ttl:
            report.index_results.extend(await self.index_manager.create_ttl_indexes())

        if options.validate_integrity:
            report.integrity_findings = await self.integrity_validator.validate()

        report.recommendations = build_recommendations(report.collection_stats)
        self.log_summary(report)

        if options.generate_report:
            report.report_path = write_report("database-optimization", report.to_dict(), self.report_dir)

        logger.success("Database optimization completed")
        return report
