"""
MongoDB directory for async operations.
Handles connection, indexing and the course/user queries each tick enumerates.
"""

from typing import Dict, List, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure

from watcher.models import CourseInfo

logger = structlog.get_logger(__name__)

ACTIVE_STAGES = ("PRE_START", "CURRENT", "POST")

CLASSES = "classes"
CLASS_USERS = "class_users"
USERS = "users"


class DirectoryManager:
    """
    Async MongoDB directory of active courses and users.
    """

    def __init__(self, connection_url: str, database_name: str):
        """
        Initialize directory manager.

        Args:
            connection_url: MongoDB connection URL
            database_name: Name of the database
        """
        self.connection_url = connection_url
        self.database_name = database_name
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None

    @classmethod
    def from_database(cls, database: AsyncIOMotorDatabase) -> 'DirectoryManager':
        """Wrap an already connected database."""
        manager = cls(connection_url="", database_name=database.name)
        manager.database = database
        return manager

    async def connect(self) -> None:
        """Establish connection to MongoDB."""
        try:
            self.client = AsyncIOMotorClient(self.connection_url)
            self.database = self.client[self.database_name]

            # Test connection
            await self.client.admin.command('ping')
            logger.info("Successfully connected to MongoDB", database=self.database_name)

            await self._create_indexes()

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    async def _create_indexes(self) -> None:
        """Create indexes for the enumeration queries."""
        try:
            await self.database[CLASSES].create_index("stage")
            await self.database[CLASS_USERS].create_index([("class_id", 1), ("user_id", 1)], unique=True)
            await self.database[USERS].create_index("ext_devices")

            logger.info("Successfully created MongoDB indexes")

        except Exception as e:
            logger.error("Failed to create indexes", error=str(e))
            raise

    async def active_courses(self) -> Dict[str, CourseInfo]:
        """
        Get every course whose stage is active.

        Returns:
            Dict[str, CourseInfo]: Courses keyed by course id, ordered by id
        """
        cursor = self.database[CLASSES].find({"stage": {"$in": list(ACTIVE_STAGES)}}).sort("_id", 1)
        documents = await cursor.to_list(length=None)

        courses: Dict[str, CourseInfo] = {}
        for doc in documents:
            course_id = str(doc["_id"])
            courses[course_id] = CourseInfo(
                course_id=course_id,
                course_code=doc.get("course_code") or course_id,
                slug_id=doc.get("slug_id") or "",
                stage=doc.get("stage")
            )

        logger.debug("Loaded active courses", count=len(courses))
        return courses

    async def active_users_in_course(self, course_id: str) -> List[str]:
        """
        Get the active users enrolled in a course.

        Args:
            course_id: Course id

        Returns:
            List[str]: User ids, ordered
        """
        cursor = self.database[CLASS_USERS].find({"class_id": course_id}, {"user_id": 1})
        enrolled = {str(doc["user_id"]) for doc in await cursor.to_list(length=None) if doc.get("user_id")}
        if not enrolled:
            return []

        cursor = self.database[USERS].find(
            {"_id": {"$in": sorted(enrolled)}, "ext_devices": {"$gte": 1}},
            {"_id": 1}
        ).sort("_id", 1)
        return [str(doc["_id"]) for doc in await cursor.to_list(length=None)]

    async def all_active_users(self) -> List[str]:
        """Get every user with at least one registered device."""
        cursor = self.database[USERS].find({"ext_devices": {"$gte": 1}}, {"_id": 1}).sort("_id", 1)
        return [str(doc["_id"]) for doc in await cursor.to_list(length=None)]

    async def get_statistics(self) -> Dict[str, int]:
        """Get collection counts for start-up logging."""
        return {
            "active_courses": await self.database[CLASSES].count_documents(
                {"stage": {"$in": list(ACTIVE_STAGES)}}
            ),
            "active_users": await self.database[USERS].count_documents({"ext_devices": {"$gte": 1}}),
            "enrollments": await self.database[CLASS_USERS].count_documents({}),
        }
