# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

from aws_cdk import (
    ArnFormat,
    Duration,
    Stack,
    aws_cloudwatch as cloudwatch,
    aws_cloudwatch_actions as cw_actions,
    aws_elasticloadbalancingv2 as elb,
    aws_sns as sns,
)
from constructs import Construct


class PdsAlarmsConstruct(Construct):
    """
    Alarms on the health of the PDS load balancer target group, sent to an existing SNS topic
    """

    def __init__(self, scope: Construct, construct_id: str, target_group: elb.ApplicationTargetGroup,
                 topic_name: str) -> None:
        super().__init__(scope, construct_id)
        self._target_group = target_group

        stack = Stack.of(self)
        self._stack_name = stack.stack_name
        self._topic = sns.Topic.from_topic_arn(
            self, 'AlarmTopic',
            stack.format_arn(
                service='sns',
                resource=topic_name,
                arn_format=ArnFormat.NO_RESOURCE_NAME
            )
        )
        self._alarms = []

        self._add_alarm(
            'TargetGroupUnhealthyHosts', 'Unhealthy-Hosts',
            metric=target_group.metrics.unhealthy_host_count(),
            comparison_operator=cloudwatch.ComparisonOperator.GREATER_THAN_OR_EQUAL_TO_THRESHOLD,
            evaluation_periods=2
        )

        # The PDS is down if no task is healthy, including when the metric isn't reported at all
        self._add_alarm(
            'TargetGroupNoHealthyHosts', 'No-Healthy-Hosts',
            metric=target_group.metrics.healthy_host_count(statistic=cloudwatch.Stats.MINIMUM),
            comparison_operator=cloudwatch.ComparisonOperator.LESS_THAN_THRESHOLD,
            evaluation_periods=2,
            treat_missing_data=cloudwatch.TreatMissingData.BREACHING
        )

        # Two PDS tasks would share the same hostname but not the same data
        self._add_alarm(
            'TargetGroupTooManyHealthyHosts', 'Too-Many-Healthy-Hosts',
            metric=target_group.metrics.healthy_host_count(statistic=cloudwatch.Stats.MAXIMUM),
            comparison_operator=cloudwatch.ComparisonOperator.GREATER_THAN_THRESHOLD,
            evaluation_periods=1
        )

        self._add_alarm(
            'TargetGroup5xx', 'Http-500',
            metric=target_group.metrics.http_code_target(
                elb.HttpCodeTarget.TARGET_5XX_COUNT,
                period=Duration.minutes(1)
            ),
            comparison_operator=cloudwatch.ComparisonOperator.GREATER_THAN_OR_EQUAL_TO_THRESHOLD,
            evaluation_periods=1
        )

    def _add_alarm(self, construct_id: str, name_suffix: str, **kwargs) -> cloudwatch.Alarm:
        alarm = cloudwatch.Alarm(
            self, construct_id,
            alarm_name=f'{self._stack_name}-{name_suffix}',
            threshold=1,
            **kwargs
        )
        alarm.add_alarm_action(cw_actions.SnsAction(self._topic))
        self._alarms.append(alarm)
        return alarm

    @property
    def alarms(self) -> list:
        return list(self._alarms)
