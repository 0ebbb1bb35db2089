"""
GraphQL documents for the Halo gateway.

Only the fields the watchers and the event payloads use are selected.
"""

RESOURCE_FRAGMENT = """
fragment resource on Resource {
  id
  kind
  name
  type
  active
  context
  description
}
"""

ANNOUNCEMENTS = """
query GetAnnouncementsStudent($courseClassId: String!) {
  announcements(courseClassId: $courseClassId) {
    courseClassId
    forumId
    startDate
    endDate
    title
    posts {
      content
      expiryDate
      forumId
      forumTitle
      id
      isRead
      modifiedDate
      postStatus
      publishDate
      startDate
      title
      createdBy {
        id
        user {
          firstName
          lastName
        }
      }
      resources {
        ...resource
      }
    }
  }
}
""" + RESOURCE_FRAGMENT

GRADE_OVERVIEW = """
query GradeOverview($courseClassSlugId: String!, $courseClassUserIds: [String]) {
  gradeOverview: getAllClassGrades(
    courseClassSlugId: $courseClassSlugId
    courseClassUserIds: $courseClassUserIds
  ) {
    finalGrade {
      id
      finalPoints
      gradeValue
      isPublished
      maxPoints
    }
    grades {
      id
      status
      userLastSeenDate
      dueDate
      finalPoints
      assessment {
        id
      }
      assignmentSubmission {
        id
        submissionDate
      }
      post {
        id
        publishDate
      }
      finalComment {
        comment
      }
    }
  }
}
"""

ASSESSMENT_FEEDBACK = """
query AssessmentFeedback($assessmentId: String!, $userId: String!) {
  assessmentFeedback: getGradeForUserCourseClassAssessment(
    courseClassAssessmentId: $assessmentId
    userId: $userId
  ) {
    id
    gradedDate
    userLastSeenDate
    dueDate
    finalPoints
    assessment {
      id
      courseClassId
      description
      dueDate
      points
      startDate
      title
      type
    }
    finalComment {
      comment
      commentResources {
        resource {
          ...resource
        }
      }
    }
    rubricScores {
      comment
      criteriaId
      rubricCellId
    }
    user {
      id
      firstName
      lastName
    }
  }
}
""" + RESOURCE_FRAGMENT

INBOX_FORUMS = """
query GetInboxLeftPanelNotification {
  getInboxLeftPanelNotification {
    unansweredCount
    courseClassId
    inboxForumCount {
      forumId
      isUnAnswered
      unreadCount
    }
  }
}
"""

INBOX_FORUM_POSTS = """
query getPostsByInboxForumId($forumId: String, $pgNum: Int, $pgSize: Int) {
  getPostsForInboxForum: getPostsForInboxForum(
    forumId: $forumId
    pgNum: $pgNum
    pgSize: $pgSize
  ) {
    id
    content
    expiryDate
    parentPostId
    postStatus
    isRead
    publishDate
    wordCount
    createdBy {
      id
      courseClassId
      roleName
      userId
      user {
        id
        firstName
        lastName
      }
    }
    resources {
      ...resource
    }
  }
}
""" + RESOURCE_FRAGMENT
